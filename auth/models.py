"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond construction
helpers). Stores and the gateway do the work.

Layer rule: no imports from api/ or bookings/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


@dataclass
class User:
    """A subject profile as stored in the user directory.

    uid is assigned by the identity provider and never changes. email is
    stored lower-cased; the directory normalizes on every read and write.
    created_by is the uid of the admin who created the account, "system"
    for the bootstrap admin, and None for self-registration.
    """

    uid: str
    email: str
    role: str = ROLE_USER
    is_active: bool = True
    first_name: str = ""
    last_name: str = ""
    created_at: str = ""  # ISO 8601, set by the directory on insert
    updated_at: str = ""
    last_login: str | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by a session token.

    A snapshot at issuance time. role may be stale -- authorization
    decisions use the live directory record, never this field.
    """

    subject: str
    email: str
    role: str
    issued_at: int = 0
    expires_at: int = 0


@dataclass(frozen=True)
class IdentityContext:
    """The authenticated caller, as seen by route handlers.

    Built once per request by the gateway from the live directory record.
    token_role is the role embedded in the presented token; it is kept for
    diagnostics and must not be used for access decisions.
    """

    uid: str
    email: str
    role: str
    is_active: bool
    first_name: str = ""
    last_name: str = ""
    created_at: str = ""
    last_login: str | None = None
    token_role: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User, claims: TokenClaims) -> "IdentityContext":
        return cls(
            uid=user.uid,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=user.created_at,
            last_login=user.last_login,
            token_role=claims.role,
        )
