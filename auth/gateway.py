"""
auth/gateway.py -- Request authentication pipeline and role policies.

AuthGateway.authenticate() turns an Authorization header into an
IdentityContext or raises. Stages run in order and the first failure is
terminal for the request:

  1. Extraction     "Bearer <token>" only; anything else -> Unauthenticated
  2. Verification   auth.tokens.verify(); any TokenError -> Unauthenticated
  3. Resolution     live profile by the token's sub; missing -> Unauthenticated
                    (the identity was revoked; same signal as a bad token)
  4. Status         is_active False -> Forbidden, even though the token
                    is still cryptographically valid
  5. Context        IdentityContext built from the LIVE profile

The token is treated as an identity pointer only. Role and status always
come from the directory, so demotion, promotion and deactivation take
effect on the next request without any revocation list.

A store failure during resolution propagates unchanged. It surfaces as a
500, never as an auth decision, and the gateway does not retry it.

Policy checks (require_authenticated, require_role, require_admin) are
plain functions over the context so they compose in any order. Their
Forbidden message names the required role(s) and nothing else.

Layer rule: no imports from api/ or bookings/. FastAPI wiring lives in
auth/dependencies.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.directory import UserDirectory
from auth.models import ROLE_ADMIN, IdentityContext
from auth.tokens import TokenError, verify
from core.errors import Forbidden, Unauthenticated

logger = logging.getLogger("wayfarer.auth.gateway")

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an Authorization header value.

    Raises Unauthenticated if the header is missing, uses another scheme,
    or carries an empty token.
    """
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise Unauthenticated("Authorization header missing or invalid format.", code="missing_token")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise Unauthenticated("Authorization header missing or invalid format.", code="missing_token")
    return token


class AuthGateway:
    """Stateless per-request authenticator.

    Holds only the signing secret and a directory reference, so a single
    instance is shared by all concurrent requests.
    """

    def __init__(self, directory: UserDirectory, secret_key: str) -> None:
        self._directory = directory
        self._secret_key = secret_key

    def authenticate(self, authorization: str | None) -> IdentityContext:
        token = extract_bearer_token(authorization)

        try:
            claims = verify(token, self._secret_key)
        except TokenError as exc:
            logger.info("Token rejected: %s", type(exc).__name__)
            raise Unauthenticated("Invalid or expired token.", code="invalid_token") from exc

        user = self._directory.get_by_id(claims.subject)
        if user is None:
            logger.info("Token subject no longer in directory")
            raise Unauthenticated("Invalid or expired token.", code="invalid_token")

        if not user.is_active:
            raise Forbidden("User account is deactivated.", code="account_deactivated")

        return IdentityContext.from_user(user, claims)


# ---------------------------------------------------------------------------
# Policy checks
# ---------------------------------------------------------------------------


def require_authenticated(ctx: IdentityContext | None) -> IdentityContext:
    if ctx is None:
        raise Unauthenticated("Authentication required.")
    return ctx


def require_role(ctx: IdentityContext | None, allowed: Iterable[str]) -> IdentityContext:
    ctx = require_authenticated(ctx)
    allowed = tuple(allowed)
    if ctx.role not in allowed:
        raise Forbidden(f"Access denied. Required roles: {', '.join(allowed)}")
    return ctx


def require_admin(ctx: IdentityContext | None) -> IdentityContext:
    return require_role(ctx, (ROLE_ADMIN,))
