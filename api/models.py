"""
API request and response models for Wayfarer REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
bookings/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire format: field names are camelCase on the wire (confirmPassword,
firstName, isActive, redirectTo) and snake_case in Python. _ApiModel sets the
alias generator once; populate_by_name lets handlers construct models with
Python names.

Separation of concerns: auth/ and bookings/ models = domain truth;
api/ models = API contract.
"""

import datetime as dt
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

from auth.models import IdentityContext, User
from bookings.models import Booking

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PHONE_PATTERN = r"^\+?[0-9 ()\-]{6,20}$"

# bcrypt only looks at the first 72 bytes, so longer passwords are refused
# rather than silently truncated.
PASSWORD_MAX_LENGTH = 72

# The pydantic-core regex engine has no lookahead, so the character class
# rules are checked in validators.
_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")
_SPECIAL = re.compile(r"[@$!%*?&]")


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _check_mixed_case_and_digit(value: str) -> str:
    if not (_LOWER.search(value) and _UPPER.search(value) and _DIGIT.search(value)):
        raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return value


# ---------------------------------------------------------------------------
# Base and enums
# ---------------------------------------------------------------------------


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _ApiRequest(_ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


class BookingStatusEnum(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class _EmailRequest(_ApiRequest):
    """Base for requests keyed by an email address; normalizes it to lower case."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class RegisterRequest(_EmailRequest):
    """Request body for POST /api/v1/auth/register.

    confirmPassword is validated against password after password itself has
    passed its own rules, so a weak password reports one error, not two.
    """

    password: str = Field(min_length=6, max_length=PASSWORD_MAX_LENGTH)
    confirm_password: str = Field(max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_mixed_case_and_digit(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("Password confirmation does not match password")
        return value


class LoginRequest(_EmailRequest):
    """Request body for POST /api/v1/auth/login.

    Only presence is checked here. Strength rules are not applied on login:
    an account created under older rules must still be able to sign in.
    """

    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ResetPasswordRequest(_EmailRequest):
    pass


# ---------------------------------------------------------------------------
# Admin request models
# ---------------------------------------------------------------------------


class CreateAdminRequest(_EmailRequest):
    """Request body for POST /api/v1/admin/create-admin.

    Admin accounts carry a stricter password rule than self-registration:
    at least 8 characters including a special character.
    """

    password: str = Field(min_length=8, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        _check_mixed_case_and_digit(value)
        if not _SPECIAL.search(value):
            raise ValueError("Password must contain at least one special character (@$!%*?&)")
        return value


class RoleUpdate(_ApiRequest):
    role: RoleEnum


class StatusUpdate(_ApiRequest):
    # strict: "yes" or 1 are not booleans
    is_active: bool = Field(strict=True)


class BookingStatusUpdate(_ApiRequest):
    status: BookingStatusEnum


# ---------------------------------------------------------------------------
# Booking request models
# ---------------------------------------------------------------------------


class BookingCreate(_ApiRequest):
    """Request body for POST /api/v1/bookings.

    place, date and name are required. At least one contact channel
    (email or phone) must be present.
    """

    place: str = Field(min_length=1, max_length=255)
    hotel: Optional[str] = Field(default=None, max_length=255)
    date: dt.date
    name: str = Field(min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("hotel", "email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def require_contact(self) -> "BookingCreate":
        if not self.email and not self.phone:
            raise ValueError("Either email or phone is required")
        return self


# ---------------------------------------------------------------------------
# User response models
# ---------------------------------------------------------------------------


class UserResponse(_ApiModel):
    """Public view of a subject profile. Never carries credentials."""

    uid: str
    email: str
    role: str
    first_name: str
    last_name: str
    is_active: bool
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from a directory User.

        Factory Method: the mapping lives here, colocated with the output
        model, rather than scattered across route handlers.
        """
        return cls(
            uid=user.uid,
            email=user.email,
            role=user.role,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login=user.last_login,
        )

    @classmethod
    def from_identity(cls, identity: IdentityContext) -> "UserResponse":
        return cls(
            uid=identity.uid,
            email=identity.email,
            role=identity.role,
            first_name=identity.first_name,
            last_name=identity.last_name,
            is_active=identity.is_active,
            created_at=identity.created_at,
            last_login=identity.last_login,
        )


class AuthResponse(_ApiModel):
    """Response body for POST /api/v1/auth/register."""

    message: str
    token: str
    user: UserResponse


class LoginResponse(AuthResponse):
    """Response body for POST /api/v1/auth/login.

    redirect_to is a client-side hint: "/admin" for admins, "/" otherwise.
    """

    redirect_to: str


class UserEnvelope(_ApiModel):
    """Response body for GET /auth/profile and GET /admin/users/{uid}."""

    user: UserResponse


class VerifyTokenResponse(UserEnvelope):
    valid: bool = True


class UserActionResponse(_ApiModel):
    """Response body for admin writes that return the affected user."""

    message: str
    user: UserResponse


class UserPagination(_ApiModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool


class UserListResponse(_ApiModel):
    users: list[UserResponse]
    pagination: UserPagination


class UserStatistics(_ApiModel):
    total_users: int
    admin_users: int
    normal_users: int
    active_users: int
    inactive_users: int


class DashboardResponse(_ApiModel):
    """Response body for GET /api/v1/admin/dashboard."""

    statistics: UserStatistics
    recent_users: list[UserResponse]


# ---------------------------------------------------------------------------
# Booking response models
# ---------------------------------------------------------------------------


class BookingResponse(_ApiModel):
    id: str
    user_id: str
    user_email: str
    place: str
    hotel: Optional[str] = None
    date: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    created_at: str
    updated_at: str
    updated_by: Optional[str] = None
    cancelled_by: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            user_email=booking.user_email,
            place=booking.place,
            hotel=booking.hotel,
            date=booking.date,
            name=booking.name,
            email=booking.email,
            phone=booking.phone,
            status=booking.status,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            updated_by=booking.updated_by,
            cancelled_by=booking.cancelled_by,
        )


class BookingActionResponse(_ApiModel):
    """Response body for booking create, cancel and admin status updates."""

    message: str
    booking: BookingResponse


class BookingListResponse(_ApiModel):
    bookings: list[BookingResponse]


class BookingPagination(_ApiModel):
    page: int
    limit: int
    total: int
    pages: int


class BookingStats(_ApiModel):
    total: int
    pending: int
    confirmed: int
    cancelled: int
    completed: int


class AdminBookingListResponse(_ApiModel):
    """Response body for GET /api/v1/admin/bookings."""

    bookings: list[BookingResponse]
    pagination: BookingPagination
    stats: BookingStats


# ---------------------------------------------------------------------------
# Generic response models
# ---------------------------------------------------------------------------


class MessageResponse(_ApiModel):
    message: str


class ResetPasswordResponse(MessageResponse):
    """reset_link is only populated when DEBUG=true."""

    reset_link: Optional[str] = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope for all 4xx and 5xx responses.

    Clients read error for display and code to branch. details is present
    only for validation failures.
    """

    error: str
    code: str
    details: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
