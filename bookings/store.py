"""
bookings/store.py -- SQLAlchemy-backed persistence layer for bookings.

Uses SQLAlchemy Core (not ORM) so the dataclass in bookings/models.py stays
the authoritative domain representation.

Pattern: Repository + Data Mapper. BookingStore is the repository,
_row_to_booking the mapper. Route handlers never touch SQL directly.

Consistency: each method is a single point read or write. There are no
cross-record transactions; the duplicate check in find_duplicate()
and the insert that follows it are separate statements, so two concurrent
identical requests can both succeed. Best-effort by design of the product:
there is no availability or concurrency control.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = BookingStore("sqlite:///wayfarer.db")
    booking = store.create(Booking(user_id=uid, user_email=email, place="bali", date="2026-05-01", name="Al"))
    store.update_status(booking.id, "confirmed", updated_by="admin@example.com")
    store.close()
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from bookings.models import BOOKING_STATUSES, Booking
from core.db import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_bookings = Table(
    "bookings",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(128), nullable=False, index=True),
    Column("user_email", String(320), nullable=False),
    Column("place", String(255), nullable=False),
    Column("hotel", String(255)),
    Column("date", String(10), nullable=False),  # YYYY-MM-DD
    Column("name", String(255), nullable=False),
    Column("email", String(320)),
    Column("phone", String(40)),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("updated_by", Text),
    Column("cancelled_by", Text),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass
class BookingPage:
    """One page of the admin booking listing plus per-status counts."""

    bookings: list[Booking] = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class BookingStore:
    """Repository for Booking entities."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        metadata.create_all(self.engine)

    def create(self, booking: Booking) -> Booking:
        """Insert a booking with a fresh id and return the stored record."""
        booking_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _bookings.insert().values(
                    id=booking_id,
                    user_id=booking.user_id,
                    user_email=booking.user_email,
                    place=booking.place,
                    hotel=booking.hotel,
                    date=booking.date,
                    name=booking.name,
                    email=booking.email,
                    phone=booking.phone,
                    status=booking.status,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get(booking_id)

    def get(self, booking_id: str) -> Optional[Booking]:
        with self.engine.connect() as conn:
            row = conn.execute(_bookings.select().where(_bookings.c.id == booking_id)).fetchone()
        return _row_to_booking(row) if row is not None else None

    def find_duplicate(self, user_id: str, place: str, date: str) -> Optional[Booking]:
        """Return a booking by user_id for the same place and date, in any status."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _bookings.select()
                .where(
                    (_bookings.c.user_id == user_id)
                    & (_bookings.c.place == place)
                    & (_bookings.c.date == date)
                )
                .limit(1)
            ).fetchone()
        return _row_to_booking(row) if row is not None else None

    def list_for_user(self, user_id: str) -> list[Booking]:
        """Return a user's bookings, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _bookings.select().where(_bookings.c.user_id == user_id).order_by(_bookings.c.created_at.desc())
            ).fetchall()
        return [_row_to_booking(r) for r in rows]

    def list_all(self, status: Optional[str] = None) -> list[Booking]:
        """Return every booking (optionally one status), newest first."""
        query = _bookings.select().order_by(_bookings.c.created_at.desc())
        if status:
            query = query.where(_bookings.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_booking(r) for r in rows]

    def search(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> BookingPage:
        """Admin listing: status filter, text search, pagination and stats.

        The status filter runs in SQL; text search runs in memory over the
        result. stats count the filtered set by status. status="all" is no filter.
        """
        bookings = self.list_all(status if status and status != "all" else None)
        if search:
            needle = search.lower()
            bookings = [
                b
                for b in bookings
                if any(needle in (value or "").lower() for value in (b.name, b.email, b.place, b.hotel))
            ]
        stats = {"total": len(bookings)}
        for s in BOOKING_STATUSES:
            stats[s] = sum(1 for b in bookings if b.status == s)
        start = (page - 1) * limit
        return BookingPage(
            bookings=bookings[start : start + limit],
            page=page,
            limit=limit,
            total=len(bookings),
            stats=stats,
        )

    def update_status(
        self,
        booking_id: str,
        status: str,
        updated_by: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> bool:
        """Set the status and audit fields. Returns False if booking_id was not found.

        No transition rules here: the admin path may move a booking between
        any two statuses. Cancellation rules live in the cancel route.
        """
        values: dict = {"status": status, "updated_at": _now_iso(), "updated_by": updated_by}
        if cancelled_by is not None:
            values["cancelled_by"] = cancelled_by
        with self.engine.connect() as conn:
            result = conn.execute(_bookings.update().where(_bookings.c.id == booking_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete(self, booking_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_bookings.delete().where(_bookings.c.id == booking_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_booking(row) -> Booking:
    return Booking(
        id=row.id,
        user_id=row.user_id,
        user_email=row.user_email,
        place=row.place,
        hotel=row.hotel,
        date=row.date,
        name=row.name,
        email=row.email,
        phone=row.phone,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
        cancelled_by=row.cancelled_by,
    )
