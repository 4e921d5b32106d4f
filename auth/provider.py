"""
auth/provider.py -- Credential provider adapters.

The identity provider owns passwords. Wayfarer never stores a password for
an HTTP-provider account; it asks the provider to create, verify, disable,
enable or delete an account and keeps only the profile (auth/directory.py).

Two implementations of one contract:

  HttpCredentialProvider  -- Identity Toolkit style REST API (accounts:signUp,
      accounts:signInWithPassword, accounts:update, accounts:delete,
      accounts:sendOobCode). Privileged calls carry a service bearer token.
      Every call has a transport timeout; failures raise UpstreamError and
      are not retried here.

  LocalCredentialProvider -- SQLAlchemy Core table with bcrypt hashes. Used
      when no PROVIDER_URL is configured (local development) and in tests.

Security:
  verify_password() raises InvalidCredentials for both an unknown email and
  a wrong password. The two cases are never distinguished to callers.
  AccountDisabled is raised only after the password has been checked.

  The local provider runs bcrypt against _DUMMY_HASH when the email is
  unknown, so response time does not reveal whether an account exists.

Layer rule: no imports from api/ or bookings/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import bcrypt
import requests
from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.directory import normalize_email
from core.db import make_engine
from core.errors import UpstreamError

logger = logging.getLogger("wayfarer.auth.provider")

# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Base class for expected identity provider outcomes."""


class DuplicateEmail(ProviderError):
    pass


class WeakPassword(ProviderError):
    pass


class InvalidEmail(ProviderError):
    pass


class InvalidCredentials(ProviderError):
    """Unknown email or wrong password -- deliberately one class."""


class AccountDisabled(ProviderError):
    pass


class AccountNotFound(ProviderError):
    pass


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class CredentialProvider(ABC):
    """Thin contract over an external identity service."""

    @abstractmethod
    def create_account(self, email: str, password: str) -> str:
        """Create an account and return its opaque uid."""

    @abstractmethod
    def verify_password(self, email: str, password: str) -> str:
        """Return the uid if the credentials are valid."""

    @abstractmethod
    def disable_account(self, uid: str) -> None: ...

    @abstractmethod
    def enable_account(self, uid: str) -> None: ...

    @abstractmethod
    def delete_account(self, uid: str) -> None: ...

    @abstractmethod
    def issue_password_reset(self, email: str) -> str | None:
        """Return a password reset link, or None if the email is unknown."""

    def close(self) -> None:
        """Release transport resources. No-op by default."""


# ---------------------------------------------------------------------------
# HTTP provider
# ---------------------------------------------------------------------------

# Provider error message -> local exception. WEAK_PASSWORD arrives as
# "WEAK_PASSWORD : Password should be at least 6 characters", so lookups
# use the token before the first space.
_SIGNUP_ERRORS: dict[str, type[ProviderError]] = {
    "EMAIL_EXISTS": DuplicateEmail,
    "INVALID_EMAIL": InvalidEmail,
    "WEAK_PASSWORD": WeakPassword,
}

_SIGNIN_ERRORS: dict[str, type[ProviderError]] = {
    "EMAIL_NOT_FOUND": InvalidCredentials,
    "INVALID_PASSWORD": InvalidCredentials,
    "INVALID_LOGIN_CREDENTIALS": InvalidCredentials,
    "INVALID_EMAIL": InvalidCredentials,
    "USER_DISABLED": AccountDisabled,
}

_ADMIN_ERRORS: dict[str, type[ProviderError]] = {
    "USER_NOT_FOUND": AccountNotFound,
}


def _error_token(resp: requests.Response) -> str:
    try:
        message = resp.json().get("error", {}).get("message", "")
    except ValueError:
        return ""
    return str(message).split(" ", 1)[0]


class HttpCredentialProvider(CredentialProvider):
    """Identity Toolkit REST client.

    Usage:
        provider = HttpCredentialProvider(
            base_url="https://identitytoolkit.googleapis.com/v1",
            api_key="...",
            service_token="...",
        )
        uid = provider.create_account("alice@example.com", "Passw0rd!")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        service_token: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._service_token = service_token
        self._timeout = timeout
        # One session per provider for connection pooling. max_redirects=3:
        # a known API never needs more, and it limits redirect-chain abuse.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def _post(self, method: str, body: dict[str, Any], privileged: bool = False) -> requests.Response:
        url = f"{self._base_url}/accounts:{method}?{urlencode({'key': self._api_key})}"
        headers = {"Content-Type": "application/json"}
        if privileged and self._service_token:
            headers["Authorization"] = f"Bearer {self._service_token}"
        try:
            return self._session.post(url, json=body, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Identity provider call %s failed: %s", method, exc)
            raise UpstreamError(f"Identity provider call {method} failed: {exc}") from exc

    def _raise_for(self, method: str, resp: requests.Response, errors: dict[str, type[ProviderError]]) -> None:
        if resp.ok:
            return
        token = _error_token(resp)
        exc_cls = errors.get(token)
        if exc_cls is not None:
            raise exc_cls(token)
        logger.error("Identity provider %s returned %d (%s)", method, resp.status_code, token or "no error code")
        raise UpstreamError(f"Identity provider {method} returned {resp.status_code}: {token}")

    def _json(self, method: str, resp: requests.Response) -> dict[str, Any]:
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Identity provider {method} returned a non-JSON body") from exc

    def create_account(self, email: str, password: str) -> str:
        resp = self._post("signUp", {"email": email, "password": password, "returnSecureToken": False})
        self._raise_for("signUp", resp, _SIGNUP_ERRORS)
        uid = self._json("signUp", resp).get("localId")
        if not uid:
            raise UpstreamError("Identity provider signUp returned no localId")
        return uid

    def verify_password(self, email: str, password: str) -> str:
        resp = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": False},
        )
        self._raise_for("signInWithPassword", resp, _SIGNIN_ERRORS)
        uid = self._json("signInWithPassword", resp).get("localId")
        if not uid:
            raise UpstreamError("Identity provider signInWithPassword returned no localId")
        return uid

    def _set_disabled(self, uid: str, disabled: bool) -> None:
        resp = self._post("update", {"localId": uid, "disableUser": disabled}, privileged=True)
        self._raise_for("update", resp, _ADMIN_ERRORS)

    def disable_account(self, uid: str) -> None:
        self._set_disabled(uid, True)

    def enable_account(self, uid: str) -> None:
        self._set_disabled(uid, False)

    def delete_account(self, uid: str) -> None:
        resp = self._post("delete", {"localId": uid}, privileged=True)
        self._raise_for("delete", resp, _ADMIN_ERRORS)

    def issue_password_reset(self, email: str) -> str | None:
        resp = self._post(
            "sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email, "returnOobLink": True},
            privileged=True,
        )
        if not resp.ok and _error_token(resp) == "EMAIL_NOT_FOUND":
            return None
        self._raise_for("sendOobCode", resp, {})
        return self._json("sendOobCode", resp).get("oobLink")

    def close(self) -> None:
        self._session.close()


# ---------------------------------------------------------------------------
# Local provider
# ---------------------------------------------------------------------------

_MIN_PASSWORD_LENGTH = 6

_local_metadata = MetaData()

_credentials = Table(
    "credentials",
    _local_metadata,
    Column("uid", String(128), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("disabled", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates at 72 bytes; the API layer caps password length well
    below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("wayfarer_timing_dummy")


class LocalCredentialProvider(CredentialProvider):
    """Database-backed identity provider with the same contract as the HTTP one.

    Usage:
        provider = LocalCredentialProvider("sqlite:///wayfarer.db")
        uid = provider.create_account("alice@example.com", "Passw0rd!")
        assert provider.verify_password("alice@example.com", "Passw0rd!") == uid
    """

    def __init__(self, db_url: str, reset_url: str = "http://localhost:3000/reset-password") -> None:
        self.engine: Engine = make_engine(db_url)
        _local_metadata.create_all(self.engine)
        self._reset_url = reset_url

    def _get(self, email: str):
        with self.engine.connect() as conn:
            return conn.execute(_credentials.select().where(_credentials.c.email == normalize_email(email))).fetchone()

    def create_account(self, email: str, password: str) -> str:
        email = normalize_email(email)
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise InvalidEmail(email)
        if len(password) < _MIN_PASSWORD_LENGTH:
            raise WeakPassword(f"Password should be at least {_MIN_PASSWORD_LENGTH} characters")
        uid = uuid.uuid4().hex
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _credentials.insert().values(
                        uid=uid,
                        email=email,
                        hashed_password=hash_password(password),
                        disabled=0,
                        created_at=datetime.now(timezone.utc).isoformat(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail(email) from exc
        return uid

    def verify_password(self, email: str, password: str) -> str:
        row = self._get(email)
        if row is None:
            # Equalize timing -- do NOT return before running bcrypt.
            check_password(password, _DUMMY_HASH)
            raise InvalidCredentials()
        if not check_password(password, row.hashed_password):
            raise InvalidCredentials()
        if row.disabled:
            raise AccountDisabled()
        return row.uid

    def _update(self, uid: str, **fields) -> None:
        with self.engine.connect() as conn:
            result = conn.execute(_credentials.update().where(_credentials.c.uid == uid).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            raise AccountNotFound(uid)

    def disable_account(self, uid: str) -> None:
        self._update(uid, disabled=1)

    def enable_account(self, uid: str) -> None:
        self._update(uid, disabled=0)

    def delete_account(self, uid: str) -> None:
        with self.engine.connect() as conn:
            result = conn.execute(_credentials.delete().where(_credentials.c.uid == uid))
            conn.commit()
        if result.rowcount == 0:
            raise AccountNotFound(uid)

    def issue_password_reset(self, email: str) -> str | None:
        """Return a reset link for a known email.

        Local links are informational: the oobCode is random and not stored,
        and there is no confirm-reset endpoint behind it.
        """
        if self._get(email) is None:
            return None
        return f"{self._reset_url}?{urlencode({'mode': 'resetPassword', 'oobCode': secrets.token_urlsafe(32)})}"

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_provider(settings) -> CredentialProvider:
    """Select the provider from configuration.

    PROVIDER_URL set: the HTTP provider. Otherwise the local provider sharing
    DATABASE_URL, which is what development and the test suite use.
    """
    if settings.provider_url:
        logger.info("Using HTTP identity provider at %s", settings.provider_url)
        return HttpCredentialProvider(
            base_url=settings.provider_url,
            api_key=settings.provider_api_key,
            service_token=settings.provider_service_token,
            timeout=settings.provider_timeout_seconds,
        )
    logger.info("PROVIDER_URL not set; using the local credential provider")
    return LocalCredentialProvider(settings.database_url, reset_url=settings.password_reset_url)
