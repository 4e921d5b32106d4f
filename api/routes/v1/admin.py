"""
api/routes/v1/admin.py -- Administrative user and booking management.

Routes:
  GET    /api/v1/admin/dashboard                -- user statistics + 10 newest users
  GET    /api/v1/admin/users                    -- filtered, paginated user list
  GET    /api/v1/admin/users/{uid}              -- one user
  POST   /api/v1/admin/create-admin             -- create an admin account
  PUT    /api/v1/admin/users/{uid}/role         -- set role
  PUT    /api/v1/admin/users/{uid}/status       -- activate / deactivate
  DELETE /api/v1/admin/users/{uid}              -- hard delete (provider + profile)
  GET    /api/v1/admin/bookings                 -- filtered, paginated bookings + stats
  PATCH  /api/v1/admin/bookings/{id}/status     -- set any booking status
  DELETE /api/v1/admin/bookings/{id}            -- delete a booking

Every route requires an admin. The check runs as a router-level dependency,
so a new route added here cannot forget it. Handlers that need the caller
also declare get_identity; the gateway result is cached on request.state so
the directory is read once per request.

Self-protection (no self-demotion, self-deactivation or self-deletion) is
enforced by AccountService, not here.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AdminBookingListResponse,
    BookingActionResponse,
    BookingPagination,
    BookingResponse,
    BookingStats,
    BookingStatusUpdate,
    CreateAdminRequest,
    DashboardResponse,
    MessageResponse,
    RoleUpdate,
    StatusUpdate,
    UserActionResponse,
    UserEnvelope,
    UserListResponse,
    UserPagination,
    UserResponse,
    UserStatistics,
)
from auth.accounts import AccountService
from auth.dependencies import get_identity, require_admin
from auth.directory import UserDirectory, search_users, user_statistics
from auth.models import IdentityContext
from auth.provider import InvalidEmail, WeakPassword
from bookings.store import BookingStore
from core.errors import NotFound, ValidationError

logger = logging.getLogger("wayfarer.api.admin")

RECENT_USERS = 10

# Auth policy:
# - every route in this module: requires admin (router-level Depends(require_admin))
router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(request: Request) -> DashboardResponse:
    """Return user counts by role and status, plus the newest accounts."""
    directory: UserDirectory = request.app.state.directory
    users = directory.list_all()
    recent = search_users(users, page=1, limit=RECENT_USERS).users
    return DashboardResponse(
        statistics=UserStatistics(**user_statistics(users)),
        recent_users=[UserResponse.from_user(u) for u in recent],
    )


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[str] = Query(None, pattern="^(all|user|admin)$"),
    status: Optional[str] = Query(None, pattern="^(all|active|inactive)$"),
    search: Optional[str] = Query(None, max_length=100),
) -> UserListResponse:
    """List users newest first. role and status accept "all" as no filter."""
    directory: UserDirectory = request.app.state.directory
    result = search_users(directory.list_all(), role=role, status=status, search=search, page=page, limit=limit)
    return UserListResponse(
        users=[UserResponse.from_user(u) for u in result.users],
        pagination=UserPagination(
            current_page=result.page,
            total_pages=result.total_pages,
            total_users=result.total,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/users/{uid}", response_model=UserEnvelope)
def get_user(request: Request, uid: str) -> UserEnvelope:
    accounts: AccountService = request.app.state.accounts
    return UserEnvelope(user=UserResponse.from_user(accounts.get_user(uid)))


@router.post("/create-admin", response_model=UserActionResponse, status_code=201)
def create_admin(
    request: Request,
    body: CreateAdminRequest,
    identity: IdentityContext = Depends(get_identity),
) -> UserActionResponse:
    """Create an admin account.

    Unlike self-registration, a taken email is reported as 409: the caller
    is already an admin and can list users anyway.
    """
    accounts: AccountService = request.app.state.accounts
    try:
        user = accounts.create_admin(identity, body.email, body.password, body.first_name, body.last_name)
    except WeakPassword as exc:
        raise ValidationError(
            "Validation failed",
            details=[{"field": "password", "message": "Password is too weak."}],
        ) from exc
    except InvalidEmail as exc:
        raise ValidationError(
            "Validation failed",
            details=[{"field": "email", "message": "Valid email is required."}],
        ) from exc
    logger.info("Admin %s created by %s", user.uid, identity.uid)
    return UserActionResponse(message="Admin user created successfully", user=UserResponse.from_user(user))


@router.put("/users/{uid}/role", response_model=UserActionResponse)
def update_role(
    request: Request,
    uid: str,
    body: RoleUpdate,
    identity: IdentityContext = Depends(get_identity),
) -> UserActionResponse:
    accounts: AccountService = request.app.state.accounts
    user = accounts.set_role(identity, uid, body.role.value)
    return UserActionResponse(message="User role updated successfully", user=UserResponse.from_user(user))


@router.put("/users/{uid}/status", response_model=UserActionResponse)
def update_status(
    request: Request,
    uid: str,
    body: StatusUpdate,
    identity: IdentityContext = Depends(get_identity),
) -> UserActionResponse:
    """Activate or deactivate a user.

    Deactivation takes effect on the target's next request: the gateway
    reads is_active from the directory, so outstanding tokens stop working
    without a revocation list.
    """
    accounts: AccountService = request.app.state.accounts
    user = accounts.set_status(identity, uid, body.is_active)
    verb = "activated" if body.is_active else "deactivated"
    return UserActionResponse(message=f"User {verb} successfully", user=UserResponse.from_user(user))


@router.delete("/users/{uid}", response_model=UserActionResponse)
def delete_user(
    request: Request,
    uid: str,
    identity: IdentityContext = Depends(get_identity),
) -> UserActionResponse:
    accounts: AccountService = request.app.state.accounts
    user = accounts.delete_user(identity, uid)
    return UserActionResponse(message="User deleted successfully", user=UserResponse.from_user(user))


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@router.get("/bookings", response_model=AdminBookingListResponse)
def list_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    status: Optional[str] = Query(None, pattern="^(all|pending|confirmed|cancelled|completed)$"),
    search: Optional[str] = Query(None, max_length=100),
) -> AdminBookingListResponse:
    """List all bookings newest first, with per-status counts of the filtered set."""
    store: BookingStore = request.app.state.bookings
    result = store.search(status=status, search=search, page=page, limit=limit)
    return AdminBookingListResponse(
        bookings=[BookingResponse.from_booking(b) for b in result.bookings],
        pagination=BookingPagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
        stats=BookingStats(**result.stats),
    )


@router.patch("/bookings/{booking_id}/status", response_model=BookingActionResponse)
def update_booking_status(
    request: Request,
    booking_id: str,
    body: BookingStatusUpdate,
    identity: IdentityContext = Depends(get_identity),
) -> BookingActionResponse:
    """Move a booking to any status. No transition rules on the admin path."""
    store: BookingStore = request.app.state.bookings
    if not store.update_status(booking_id, body.status.value, updated_by=identity.email):
        raise NotFound("Booking not found.")
    logger.info("Booking %s set to %s by %s", booking_id, body.status.value, identity.uid)
    return BookingActionResponse(
        message="Booking status updated successfully",
        booking=BookingResponse.from_booking(store.get(booking_id)),
    )


@router.delete("/bookings/{booking_id}", response_model=MessageResponse)
def delete_booking(
    request: Request,
    booking_id: str,
    identity: IdentityContext = Depends(get_identity),
) -> MessageResponse:
    store: BookingStore = request.app.state.bookings
    if not store.delete(booking_id):
        raise NotFound("Booking not found.")
    logger.info("Booking %s deleted by %s", booking_id, identity.uid)
    return MessageResponse(message="Booking deleted successfully")
