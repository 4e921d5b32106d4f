"""
api/routes/v1/bookings.py -- Booking endpoints for authenticated users.

Routes:
  POST  /api/v1/bookings                  -- create a booking (status pending)
  GET   /api/v1/bookings/my-bookings      -- caller's bookings, newest first
  PATCH /api/v1/bookings/{id}/cancel      -- cancel (owner or admin)

Ownership: a booking belongs to the user_id it was created under. Only the
owner or an admin may cancel it. Lookups are by id, so the 404 check comes
first, then ownership (403), then state (409).

Duplicate check: the same user may not hold two bookings for the same place
and date, whatever the status of the first. The check and the insert are separate statements;
see bookings/store.py for the concurrency caveat.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import BookingActionResponse, BookingCreate, BookingListResponse, BookingResponse
from auth.dependencies import get_identity
from auth.models import IdentityContext
from bookings.models import STATUS_CANCELLED, Booking
from bookings.store import BookingStore
from core.errors import Conflict, Forbidden, NotFound

logger = logging.getLogger("wayfarer.api.bookings")

# Auth policy:
# - POST  /api/v1/bookings:               requires auth (get_identity)
# - GET   /api/v1/bookings/my-bookings:   requires auth (get_identity); own records only
# - PATCH /api/v1/bookings/{id}/cancel:   requires auth + owner-or-admin check below
router = APIRouter(prefix="/bookings")


@router.post("", response_model=BookingActionResponse, status_code=201)
def create_booking(
    request: Request,
    body: BookingCreate,
    identity: IdentityContext = Depends(get_identity),
) -> BookingActionResponse:
    store: BookingStore = request.app.state.bookings
    date = body.date.isoformat()
    if store.find_duplicate(identity.uid, body.place, date) is not None:
        raise Conflict("You have already made a booking for this place and date.", code="duplicate_booking")

    booking = store.create(
        Booking(
            user_id=identity.uid,
            user_email=identity.email,
            place=body.place,
            hotel=body.hotel,
            date=date,
            name=body.name,
            email=body.email,
            phone=body.phone,
        )
    )
    logger.info("Booking %s created by %s", booking.id, identity.uid)
    return BookingActionResponse(message="Booking created successfully", booking=BookingResponse.from_booking(booking))


@router.get("/my-bookings", response_model=BookingListResponse)
def my_bookings(request: Request, identity: IdentityContext = Depends(get_identity)) -> BookingListResponse:
    store: BookingStore = request.app.state.bookings
    return BookingListResponse(bookings=[BookingResponse.from_booking(b) for b in store.list_for_user(identity.uid)])


@router.patch("/{booking_id}/cancel", response_model=BookingActionResponse)
def cancel_booking(
    request: Request,
    booking_id: str,
    identity: IdentityContext = Depends(get_identity),
) -> BookingActionResponse:
    """Cancel a pending or confirmed booking.

    Cancelled and completed bookings are final on this path; an admin who
    needs to reopen one uses PATCH /admin/bookings/{id}/status.
    """
    store: BookingStore = request.app.state.bookings
    booking = store.get(booking_id)
    if booking is None:
        raise NotFound("Booking not found.")
    if booking.user_id != identity.uid and not identity.is_admin:
        raise Forbidden("Unauthorized to cancel this booking.")
    if not booking.can_be_cancelled:
        raise Conflict(f"Booking is already {booking.status}.", code="booking_not_cancellable")

    store.update_status(booking_id, STATUS_CANCELLED, updated_by=identity.email, cancelled_by=identity.email)
    logger.info("Booking %s cancelled by %s", booking_id, identity.uid)
    return BookingActionResponse(
        message="Booking cancelled successfully",
        booking=BookingResponse.from_booking(store.get(booking_id)),
    )
