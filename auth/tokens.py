"""
auth/tokens.py -- Session token codec: issue and verify signed JWTs.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (uid), email, role, iat and
       exp. The expiry horizon is fixed at issuance and never extended; a
       client that wants a fresh token logs in again.

  Pure transform: issue() and verify() take the secret explicitly and never
       touch settings, the directory, or the clock beyond the optional `now`
       argument. The gateway owns configuration; tests can pin time.

  Failure classes: verify() raises one of three TokenError subclasses so
       tests and logs can tell them apart, but the gateway collapses all of
       them into a single Unauthenticated outcome. No partial trust.

  Check order: structure first (TokenMalformed), then the embedded expiry
       (TokenExpired), then the signature (TokenInvalidSignature). An expired
       token is reported as expired whether or not its signature is valid.

Layer rule: no imports from api/ or bookings/.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import TokenClaims

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "email", "role")

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenMalformed(TokenError):
    """The token cannot be parsed or lacks required claims."""


class TokenExpired(TokenError):
    """The embedded expiry is in the past."""


class TokenInvalidSignature(TokenError):
    """The signature does not match the header and claims."""


def _timestamp(now: datetime | None) -> int:
    return int(now.timestamp()) if now is not None else int(time.time())


def issue(
    claims: Mapping[str, str],
    secret: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: datetime | None = None,
) -> str:
    """Encode a signed session token.

    Args:
        claims:      Must contain "sub", "email" and "role". Extra keys are
                     ignored so callers cannot smuggle arbitrary claims in.
        secret:      HMAC signing key.
        ttl_seconds: Lifetime from issuance.
        now:         Issuance time override (tests).
    """
    missing = [k for k in _REQUIRED_CLAIMS if not claims.get(k)]
    if missing:
        raise ValueError(f"Missing token claims: {', '.join(missing)}")
    issued_at = _timestamp(now)
    payload = {
        "sub": claims["sub"],
        "email": claims["email"],
        "role": claims["role"],
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def issue_for(uid: str, email: str, role: str, secret: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
    """Convenience wrapper used by the login and register routes."""
    return issue({"sub": uid, "email": email, "role": role}, secret, ttl_seconds)


def verify(token: str, secret: str, now: datetime | None = None) -> TokenClaims:
    """Verify a session token and return its claims.

    Raises:
        TokenMalformed:        unparseable token, unexpected algorithm,
                               missing or non-numeric exp, missing claims.
        TokenExpired:          exp is at or before the current time.
        TokenInvalidSignature: signature mismatch.
    """
    try:
        header = jwt.get_unverified_header(token)
        unverified = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise TokenMalformed("Token could not be parsed.") from exc

    # Reject "none" and asymmetric algorithms before any key is used.
    if header.get("alg") != _ALGORITHM:
        raise TokenMalformed("Unexpected token algorithm.")

    exp = unverified.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenMalformed("Token has no valid expiry.")
    if exp <= _timestamp(now):
        raise TokenExpired("Token has expired.")

    try:
        # Expiry was checked above against the caller's clock.
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM], options={"verify_exp": False})
    except ExpiredSignatureError as exc:
        raise TokenExpired("Token has expired.") from exc
    except JWTClaimsError as exc:
        raise TokenMalformed("Token claims are invalid.") from exc
    except JWTError as exc:
        raise TokenInvalidSignature("Token signature does not match.") from exc

    for key in _REQUIRED_CLAIMS:
        if not isinstance(payload.get(key), str) or not payload[key]:
            raise TokenMalformed(f"Token is missing the '{key}' claim.")

    return TokenClaims(
        subject=payload["sub"],
        email=payload["email"],
        role=payload["role"],
        issued_at=int(payload.get("iat") or 0),
        expires_at=int(exp),
    )
