"""
bookings/models.py -- Domain dataclasses for travel bookings.

Pure data containers. Persistence lives in bookings/store.py; ownership and
cancellation rules are applied by the booking routes.
"""

from dataclasses import dataclass
from typing import Optional

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)

# A booking in one of these states can no longer be cancelled.
UNCANCELLABLE_STATUSES = frozenset({STATUS_CANCELLED, STATUS_COMPLETED})


@dataclass
class Booking:
    """A reservation made by a subject for a destination on a date.

    place is the destination identifier from the public catalog. At least
    one of email/phone is required as a contact channel. updated_by and
    cancelled_by hold the email of the last actor for the audit trail.

    id is "" before the record is written to the database.
    """

    user_id: str
    user_email: str
    place: str
    date: str  # YYYY-MM-DD
    name: str
    id: str = ""
    hotel: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str = STATUS_PENDING
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    updated_by: Optional[str] = None
    cancelled_by: Optional[str] = None

    @property
    def can_be_cancelled(self) -> bool:
        return self.status not in UNCANCELLABLE_STATUSES
