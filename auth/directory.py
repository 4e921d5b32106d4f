"""
auth/directory.py -- SQLAlchemy Core persistence layer for subject profiles.

Pattern: Repository + Data Mapper. UserDirectory is the repository;
_row_to_user is the mapper. Route, gateway and service code never touch SQL
directly.

Access pattern: every operation is a point read or write keyed by uid (or
the unique email). list_all() returns the whole collection and callers
filter, sort and paginate in memory -- fine at the expected scale, and it
keeps the store portable to key/value document databases.

Consistency: last-write-wins. No version column, no optimistic locking.
Two concurrent role updates to the same uid both succeed and the later one
sticks.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or bookings/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import ROLE_ADMIN, User
from core.db import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("uid", String(128), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", Text),
    Column("created_by", String(128)),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class UserPage:
    """One page of a filtered, sorted user listing."""

    users: list[User] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserDirectory:
    """Repository for subject profiles keyed by provider-assigned uid.

    Usage:
        directory = UserDirectory("sqlite:///wayfarer.db")
        directory.create("uid-123", User(uid="uid-123", email="a@example.com"))
        user = directory.get_by_email("A@example.com")
        directory.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, uid: str) -> User | None:
        """Look up a profile by uid. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.uid == uid)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a profile by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_all(self) -> list[User]:
        """Return every profile, unordered. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select()).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, uid: str, profile: User) -> User:
        """Insert a profile under uid and return the stored record.

        Raises sqlalchemy.exc.IntegrityError if the uid or email already
        exists. The account service treats that as a failed registration.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    uid=uid,
                    email=normalize_email(profile.email),
                    role=profile.role,
                    is_active=1 if profile.is_active else 0,
                    first_name=profile.first_name or "",
                    last_name=profile.last_name or "",
                    created_at=now,
                    updated_at=now,
                    last_login=None,
                    created_by=profile.created_by,
                )
            )
            conn.commit()
        return self.get_by_id(uid)

    def update_role(self, uid: str, role: str) -> bool:
        """Set the role. Returns False if uid was not found."""
        return self._update(uid, role=role, updated_at=_now_iso())

    def update_status(self, uid: str, active: bool) -> bool:
        """Set the active flag. Returns False if uid was not found."""
        return self._update(uid, is_active=1 if active else 0, updated_at=_now_iso())

    def touch_last_login(self, uid: str) -> bool:
        """Stamp the current UTC time as last_login.

        Called on every successful password login so the admin listing shows
        accurate activity data.
        """
        return self._update(uid, last_login=_now_iso())

    def delete(self, uid: str) -> bool:
        """Permanently delete a profile. Returns True if deleted, False if not found.

        Bookings owned by the subject are left in place for the audit trail.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.uid == uid))
            conn.commit()
        return result.rowcount > 0

    def _update(self, uid: str, **fields) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.uid == uid).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# In-memory query helpers (list_all -> filter -> sort -> paginate)
# ---------------------------------------------------------------------------


def search_users(
    users: list[User],
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> UserPage:
    """Filter, sort newest-first and paginate a user list.

    role and status accept "all" as a no-op. status is "active" or
    "inactive". search matches email, first name or last name,
    case-insensitively.
    """
    if role and role != "all":
        users = [u for u in users if u.role == role]
    if status and status != "all":
        wanted = status == "active"
        users = [u for u in users if u.is_active == wanted]
    if search:
        needle = search.lower()
        users = [
            u
            for u in users
            if needle in u.email.lower() or needle in u.first_name.lower() or needle in u.last_name.lower()
        ]
    users = sorted(users, key=lambda u: u.created_at, reverse=True)
    start = (page - 1) * limit
    return UserPage(users=users[start : start + limit], page=page, limit=limit, total=len(users))


def user_statistics(users: list[User]) -> dict[str, int]:
    """Counts shown on the admin dashboard."""
    return {
        "total_users": len(users),
        "admin_users": sum(1 for u in users if u.role == ROLE_ADMIN),
        "normal_users": sum(1 for u in users if u.role != ROLE_ADMIN),
        "active_users": sum(1 for u in users if u.is_active),
        "inactive_users": sum(1 for u in users if not u.is_active),
    }


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        uid=row.uid,
        email=row.email,
        role=row.role,
        is_active=bool(row.is_active),
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
        created_by=row.created_by,
    )
