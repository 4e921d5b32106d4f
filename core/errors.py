"""
core/errors.py -- Application error taxonomy.

Every failure that reaches the HTTP boundary is one of these. Each class
carries its HTTP status and a stable machine-readable code, so api/main.py
maps the whole hierarchy with a single exception handler.

  ValidationError  400  malformed input (field details optional)
  Unauthenticated  401  missing, invalid, or expired token; revoked identity
  Forbidden        403  valid identity without the required role, deactivated
                        account, or a self-protection violation
  NotFound         404  referenced resource absent
  Conflict         409  duplicate booking, duplicate email (admin path)
  TooManyAttempts  429  login brute-force window exhausted
  UpstreamError    500  identity provider or store failure; the message is
                        replaced with a generic one before it leaves the process

Layer rule: core/ is the kernel. No imports from api/, auth/, or bookings/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors rendered as a JSON error envelope."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthenticated"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"


class NotFound(AppError):
    status_code = 404
    code = "not_found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"


class TooManyAttempts(AppError):
    status_code = 429
    code = "too_many_attempts"

    def __init__(self, message: str, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(AppError):
    """An external collaborator (identity provider, store) failed.

    The message is for logs only. Clients see a generic message.
    """

    status_code = 500
    code = "upstream_error"
