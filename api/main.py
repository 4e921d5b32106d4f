"""
api/main.py -- FastAPI application entry point for Wayfarer.

Exposes account, admin and booking operations over HTTP. Every protected
route resolves its caller through the AuthGateway (auth/gateway.py) via the
Depends() helpers in auth/dependencies.py.

Run with:      uvicorn asgi:app --reload

Middleware (Starlette wraps in reverse registration order, so the last one
added sees the request first):
  SlowAPIMiddleware     -- per-IP limits on the public auth routes
  CORSMiddleware        -- browser origins from CORS_ORIGINS
  TrustedHostMiddleware -- Host header must be in ALLOWED_HOSTS

Lifespan handles startup (stores, identity provider, account service,
gateway, optional admin bootstrap) and shutdown (close stores and provider
transport) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, FieldError, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.bookings import router as bookings_router
from auth.accounts import AccountService, RegistrationRejected
from auth.directory import UserDirectory
from auth.gateway import AuthGateway
from auth.provider import ProviderError, build_provider
from auth.throttle import LoginThrottle
from bookings.store import BookingStore
from core.config import Settings, get_settings
from core.errors import AppError, TooManyAttempts, UpstreamError

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("wayfarer.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Admin bootstrap
# ---------------------------------------------------------------------------


def bootstrap_admin(accounts: AccountService, settings: Settings) -> None:
    """Ensure INITIAL_ADMIN_EMAIL exists as an admin.

    A failure is logged and startup continues: the API is still usable, and
    an operator can retry with `python main.py init-admin`.
    """
    try:
        admin = accounts.ensure_initial_admin(settings.initial_admin_email, settings.initial_admin_password)
    except (ProviderError, RegistrationRejected, AppError):
        logger.exception("Initial admin bootstrap failed")
        return
    logger.info("Initial admin ready (%s)", admin.uid)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the services on app.state, then tear them down on shutdown.

    Order:
      1. Stores first -- the directory and booking store create their tables.
      2. Provider and throttle -- the account service composes them with the
         directory.
      3. Gateway -- shares the directory; needs the signing secret.
      4. Admin bootstrap last -- goes through the account service.
    """
    # Startup
    logger.info("Wayfarer API starting up")
    app.state.directory = UserDirectory(settings.database_url)
    app.state.bookings = BookingStore(settings.database_url)
    logger.info("Stores initialized")
    app.state.provider = build_provider(settings)
    app.state.throttle = LoginThrottle(settings.login_max_attempts, settings.login_window_seconds)
    app.state.accounts = AccountService(app.state.provider, app.state.directory, app.state.throttle)
    app.state.gateway = AuthGateway(app.state.directory, settings.secret_key)
    logger.info("Auth initialized")
    if settings.bootstrap_admin_configured:
        bootstrap_admin(app.state.accounts, settings)

    yield

    # Shutdown
    app.state.provider.close()
    app.state.bookings.close()
    app.state.directory.close()
    logger.info("Wayfarer API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Wayfarer API",
    description="Travel booking backend: accounts, role-based administration and bookings.",
    version=API_VERSION,
    lifespan=lifespan,
    # The interactive docs list every admin route; only expose them in dev.
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware reads the limiter from app.state.limiter.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler. Never logs headers: the
# Authorization header carries the bearer token.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
app.include_router(bookings_router, prefix="/api/v1", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str, details: list[FieldError] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, code=code, details=details).model_dump(exclude_none=True),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render the core.errors hierarchy.

    UpstreamError messages describe provider or store internals. They are
    logged in full and replaced with a generic message unless DEBUG is on.
    """
    if isinstance(exc, UpstreamError):
        logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc.message, exc_info=exc)
        message = exc.message if settings.debug else "An upstream service is unavailable. Please try again later."
        return _error(exc.status_code, message, exc.code)

    details = [FieldError(**d) for d in exc.details] if exc.details else None
    response = _error(exc.status_code, exc.message, exc.code, details)
    if isinstance(exc, TooManyAttempts):
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests. Please try again later.", "rate_limited")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one FieldError per failed field.

    Field names are the wire names (camelCase), taken from the error location
    with the "body"/"query"/"path" prefix dropped. A model-level failure has
    no field and is reported against "body".
    """
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        details.append(FieldError(field=".".join(loc) or "body", message=message))
    return _error(400, "Validation failed", "validation_error", details)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """A store failure is a server error, never an auth decision."""
    logger.exception("Store failure on %s %s", request.method, request.url.path)
    return _error(500, "A storage error occurred. Please try again later.", "store_error")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for framework-raised HTTP errors (404, 405, ...)."""
    return _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Liveness only: no auth, no rate limit, no store access.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=API_VERSION)
