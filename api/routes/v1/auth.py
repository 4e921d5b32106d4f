"""
api/routes/v1/auth.py -- Self-service authentication endpoints.

Routes:
  POST /api/v1/auth/register        -- create account; returns token + profile
  POST /api/v1/auth/login           -- password login; returns token + redirect hint
  GET  /api/v1/auth/profile         -- current user's live profile (requires auth)
  POST /api/v1/auth/logout          -- stateless; the client discards its token (requires auth)
  POST /api/v1/auth/reset-password  -- request a reset link; generic answer always
  GET  /api/v1/auth/verify-token    -- token check for clients (requires auth)

Security:
  register, login and reset-password share AUTH_RATE_LIMIT per client IP, in
  addition to the per-email LoginThrottle applied inside AccountService.login.
  Anti-enumeration: login answers one message for unknown email, wrong
  password and missing profile; register answers one message for a taken
  email; reset-password answers one message whether or not the email exists.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ResetPasswordResponse,
    UserEnvelope,
    UserResponse,
    VerifyTokenResponse,
)
from auth.accounts import AccountService, RegistrationRejected
from auth.dependencies import get_identity
from auth.models import IdentityContext, User
from auth.provider import AccountDisabled, InvalidCredentials, InvalidEmail, WeakPassword
from auth.tokens import issue_for
from core.config import get_settings
from core.errors import Unauthenticated, ValidationError

logger = logging.getLogger("wayfarer.api.auth")

REGISTRATION_REJECTED_MESSAGE = "Unable to register with the provided details."
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."
RESET_MESSAGE = "If an account exists for that email, a password reset link has been sent."

# Auth policy:
# - POST /api/v1/auth/register:        public -- account creation must be unauthenticated
# - POST /api/v1/auth/login:           public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:          requires auth (get_identity); nothing to revoke server-side
# - POST /api/v1/auth/reset-password:  public -- the caller has lost their password
# - GET  /api/v1/auth/profile:         requires auth (get_identity)
# - GET  /api/v1/auth/verify-token:    requires auth (get_identity)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a provider account and a role=user profile; return a session token.

    WeakPassword and InvalidEmail from the provider are field errors the
    caller can fix. A taken email gets the same generic 400 as any other
    rejection so the endpoint cannot be used to discover accounts.
    """
    accounts: AccountService = request.app.state.accounts
    try:
        user = accounts.register(body.email, body.password, body.first_name, body.last_name)
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
    except RegistrationRejected as exc:
        logger.info("Registration rejected")
        raise ValidationError(REGISTRATION_REJECTED_MESSAGE, code="registration_failed") from exc

    logger.info("Registered user %s", user.uid)
    content = AuthResponse(
        message="User registered successfully",
        token=_issue_token(user),
        user=UserResponse.from_user(user),
    )
    resp = JSONResponse(status_code=201, content=content.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(AUTH_RATE_LIMIT)  # brute-force mitigation -- must be ABOVE @router
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a session token.

    AccountService.login raises TooManyAttempts (429) once the per-email
    failure window is exhausted. AccountDisabled is only raised after the
    password was verified, so its distinct message reveals nothing to a
    caller who does not already know the password.
    """
    accounts: AccountService = request.app.state.accounts
    try:
        user = accounts.login(body.email, body.password)
    except InvalidCredentials as exc:
        raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE, code="invalid_credentials") from exc
    except AccountDisabled as exc:
        raise Unauthenticated(
            "Account is deactivated. Please contact support.", code="account_deactivated"
        ) from exc

    content = LoginResponse(
        message="Login successful",
        token=_issue_token(user),
        user=UserResponse.from_user(user),
        redirect_to="/admin" if user.role == "admin" else "/",
    )
    resp = JSONResponse(status_code=200, content=content.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/auth/reset-password", response_model=ResetPasswordResponse, response_model_exclude_none=True)
def reset_password(request: Request, body: ResetPasswordRequest) -> ResetPasswordResponse:
    """Issue a password reset link if the email is registered.

    The response is identical for known and unknown emails. The link itself
    is only echoed back in DEBUG mode; in production the provider delivers it.
    """
    accounts: AccountService = request.app.state.accounts
    link = accounts.request_password_reset(body.email)
    return ResetPasswordResponse(
        message=RESET_MESSAGE,
        reset_link=link if get_settings().debug else None,
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=UserEnvelope)
def profile(identity: IdentityContext = Depends(get_identity)) -> UserEnvelope:
    """Return the live profile of the authenticated caller."""
    return UserEnvelope(user=UserResponse.from_identity(identity))


@router.get("/auth/verify-token", response_model=VerifyTokenResponse)
def verify_token(identity: IdentityContext = Depends(get_identity)) -> VerifyTokenResponse:
    """Report that the presented token is valid, with the live profile.

    Reaching the handler is the check: get_identity has already rejected
    bad, expired, revoked and deactivated tokens.
    """
    return VerifyTokenResponse(valid=True, user=UserResponse.from_identity(identity))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(identity: IdentityContext = Depends(get_identity)) -> MessageResponse:
    """Acknowledge logout. Tokens are stateless; the client discards its copy."""
    logger.info("User %s logged out", identity.uid)
    return MessageResponse(message="Logged out successfully")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _issue_token(user: User) -> str:
    settings = get_settings()
    return issue_for(user.uid, user.email, user.role, settings.secret_key, settings.token_expire_seconds)
