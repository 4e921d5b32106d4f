"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_identity() runs the AuthGateway pipeline once per request and caches the
resulting IdentityContext on request.state.identity, so stacking several
dependencies on one route never re-queries the directory.

require_roles(*roles) builds a dependency that first authenticates, then
applies auth.gateway.require_role(). require_admin is require_roles("admin").

Errors are raised as core.errors subclasses (Unauthenticated -> 401,
Forbidden -> 403) and rendered by the AppError handler in api/main.py.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/ or
bookings/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.gateway import AuthGateway, require_role
from auth.models import ROLE_ADMIN, IdentityContext


def get_identity(request: Request) -> IdentityContext:
    """Require authentication. Raises Unauthenticated (401) or Forbidden (403).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: IdentityContext = Depends(get_identity)): ...
    """
    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached
    gateway: AuthGateway = request.app.state.gateway
    identity = gateway.authenticate(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity


def require_roles(*roles: str) -> Callable[[Request], IdentityContext]:
    """Return a dependency that requires one of the given roles.

    Use as a FastAPI dependency:
        @router.get("/staff")
        def route(identity: IdentityContext = Depends(require_roles("admin", "user"))): ...
    """

    def dependency(request: Request) -> IdentityContext:
        return require_role(get_identity(request), roles)

    return dependency


require_admin = require_roles(ROLE_ADMIN)
