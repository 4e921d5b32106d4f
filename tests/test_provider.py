"""
tests/test_provider.py -- Unit tests for the credential provider adapters.

HttpCredentialProvider is exercised against a MagicMock requests.Session so
no network is touched. The mock returns objects shaped like
requests.Response (ok, status_code, json()).

LocalCredentialProvider runs against a named in-memory SQLite database.

Covers:
  - endpoint, API key, bearer header and timeout on every call
  - provider error codes mapped to DuplicateEmail / WeakPassword /
    InvalidEmail / InvalidCredentials / AccountDisabled / AccountNotFound
  - unknown errors and transport failures -> UpstreamError
  - unknown email and wrong password are indistinguishable
  - password reset returns None for unknown emails
"""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from auth.provider import (
    AccountDisabled,
    AccountNotFound,
    DuplicateEmail,
    HttpCredentialProvider,
    InvalidCredentials,
    InvalidEmail,
    LocalCredentialProvider,
    WeakPassword,
    build_provider,
)
from core.config import get_settings
from core.errors import UpstreamError

BASE_URL = "https://idp.example.test/v1"


def _response(status: int = 200, body: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.ok = 200 <= status < 400
    resp.status_code = status
    resp.json.return_value = body if body is not None else {}
    return resp


def _error(message: str, status: int = 400) -> MagicMock:
    return _response(status, {"error": {"code": status, "message": message}})


def _provider(*responses: MagicMock) -> tuple[HttpCredentialProvider, MagicMock]:
    session = MagicMock()
    session.post.side_effect = list(responses)
    provider = HttpCredentialProvider(BASE_URL, api_key="k-123", service_token="svc-token", timeout=4.5, session=session)
    return provider, session


# ---------------------------------------------------------------------------
# HTTP provider
# ---------------------------------------------------------------------------


class TestHttpProviderRequests:
    def test_sign_up_request_shape(self) -> None:
        provider, session = _provider(_response(body={"localId": "uid-1"}))
        assert provider.create_account("alice@example.com", "Passw0rd1") == "uid-1"

        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert urlparse(url).path.endswith("/accounts:signUp")
        assert parse_qs(urlparse(url).query) == {"key": ["k-123"]}
        assert kwargs["json"]["email"] == "alice@example.com"
        assert kwargs["timeout"] == 4.5
        assert "Authorization" not in kwargs["headers"]

    def test_privileged_calls_send_service_token(self) -> None:
        provider, session = _provider(_response())
        provider.disable_account("uid-1")
        kwargs = session.post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer svc-token"
        assert kwargs["json"] == {"localId": "uid-1", "disableUser": True}

    def test_enable_sends_disable_false(self) -> None:
        provider, session = _provider(_response())
        provider.enable_account("uid-1")
        assert session.post.call_args.kwargs["json"]["disableUser"] is False

    def test_session_redirects_are_capped(self) -> None:
        provider, session = _provider()
        assert session.max_redirects == 3


class TestHttpProviderErrors:
    @pytest.mark.parametrize(
        "message, exc",
        [
            ("EMAIL_EXISTS", DuplicateEmail),
            ("INVALID_EMAIL", InvalidEmail),
            ("WEAK_PASSWORD : Password should be at least 6 characters", WeakPassword),
        ],
    )
    def test_sign_up_errors(self, message: str, exc: type[Exception]) -> None:
        provider, _ = _provider(_error(message))
        with pytest.raises(exc):
            provider.create_account("alice@example.com", "x")

    @pytest.mark.parametrize("message", ["EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS"])
    def test_unknown_email_and_wrong_password_are_one_error(self, message: str) -> None:
        provider, _ = _provider(_error(message))
        with pytest.raises(InvalidCredentials):
            provider.verify_password("alice@example.com", "wrong")

    def test_disabled_account(self) -> None:
        provider, _ = _provider(_error("USER_DISABLED"))
        with pytest.raises(AccountDisabled):
            provider.verify_password("alice@example.com", "Passw0rd1")

    def test_admin_call_on_missing_account(self) -> None:
        provider, _ = _provider(_error("USER_NOT_FOUND"))
        with pytest.raises(AccountNotFound):
            provider.delete_account("uid-404")

    def test_unknown_error_is_upstream(self) -> None:
        provider, _ = _provider(_error("INTERNAL_ERROR", status=500))
        with pytest.raises(UpstreamError):
            provider.create_account("alice@example.com", "Passw0rd1")

    def test_transport_failure_is_upstream(self) -> None:
        session = MagicMock()
        session.post.side_effect = requests.Timeout("read timed out")
        provider = HttpCredentialProvider(BASE_URL, api_key="k", session=session)
        with pytest.raises(UpstreamError):
            provider.verify_password("alice@example.com", "Passw0rd1")

    def test_missing_local_id_is_upstream(self) -> None:
        provider, _ = _provider(_response(body={}))
        with pytest.raises(UpstreamError):
            provider.create_account("alice@example.com", "Passw0rd1")


class TestHttpPasswordReset:
    def test_returns_link(self) -> None:
        provider, session = _provider(_response(body={"oobLink": "https://reset.example/abc"}))
        assert provider.issue_password_reset("alice@example.com") == "https://reset.example/abc"
        assert session.post.call_args.kwargs["json"]["requestType"] == "PASSWORD_RESET"

    def test_unknown_email_returns_none(self) -> None:
        provider, _ = _provider(_error("EMAIL_NOT_FOUND"))
        assert provider.issue_password_reset("nobody@example.com") is None


# ---------------------------------------------------------------------------
# Local provider
# ---------------------------------------------------------------------------


@pytest.fixture
def local() -> LocalCredentialProvider:
    url = f"sqlite:///file:test_provider_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    provider = LocalCredentialProvider(url, reset_url="https://app.example/reset")
    yield provider
    provider.close()


class TestLocalProvider:
    def test_create_and_verify(self, local: LocalCredentialProvider) -> None:
        uid = local.create_account("Alice@Example.com", "Passw0rd1")
        assert local.verify_password("alice@example.com", "Passw0rd1") == uid

    def test_duplicate_email(self, local: LocalCredentialProvider) -> None:
        local.create_account("alice@example.com", "Passw0rd1")
        with pytest.raises(DuplicateEmail):
            local.create_account("ALICE@example.com", "Passw0rd2")

    def test_weak_password(self, local: LocalCredentialProvider) -> None:
        with pytest.raises(WeakPassword):
            local.create_account("alice@example.com", "abc")

    def test_invalid_email(self, local: LocalCredentialProvider) -> None:
        with pytest.raises(InvalidEmail):
            local.create_account("not-an-email", "Passw0rd1")

    def test_unknown_email_and_wrong_password_are_one_error(self, local: LocalCredentialProvider) -> None:
        local.create_account("alice@example.com", "Passw0rd1")
        with pytest.raises(InvalidCredentials):
            local.verify_password("alice@example.com", "wrong-password")
        with pytest.raises(InvalidCredentials):
            local.verify_password("nobody@example.com", "Passw0rd1")

    def test_disabled_only_after_correct_password(self, local: LocalCredentialProvider) -> None:
        uid = local.create_account("alice@example.com", "Passw0rd1")
        local.disable_account(uid)
        with pytest.raises(InvalidCredentials):
            local.verify_password("alice@example.com", "wrong-password")
        with pytest.raises(AccountDisabled):
            local.verify_password("alice@example.com", "Passw0rd1")
        local.enable_account(uid)
        assert local.verify_password("alice@example.com", "Passw0rd1") == uid

    def test_admin_calls_on_unknown_uid(self, local: LocalCredentialProvider) -> None:
        with pytest.raises(AccountNotFound):
            local.disable_account("missing")
        with pytest.raises(AccountNotFound):
            local.delete_account("missing")

    def test_delete(self, local: LocalCredentialProvider) -> None:
        uid = local.create_account("alice@example.com", "Passw0rd1")
        local.delete_account(uid)
        with pytest.raises(InvalidCredentials):
            local.verify_password("alice@example.com", "Passw0rd1")

    def test_password_reset(self, local: LocalCredentialProvider) -> None:
        local.create_account("alice@example.com", "Passw0rd1")
        link = local.issue_password_reset("alice@example.com")
        assert link.startswith("https://app.example/reset?")
        assert parse_qs(urlparse(link).query)["mode"] == ["resetPassword"]
        assert local.issue_password_reset("nobody@example.com") is None


def test_build_provider_defaults_to_local() -> None:
    settings = get_settings().model_copy(
        update={"provider_url": "", "database_url": f"sqlite:///file:bp_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"}
    )
    provider = build_provider(settings)
    try:
        assert isinstance(provider, LocalCredentialProvider)
    finally:
        provider.close()


def test_build_provider_uses_http_when_configured() -> None:
    settings = get_settings().model_copy(update={"provider_url": BASE_URL, "provider_api_key": "k"})
    provider = build_provider(settings)
    try:
        assert isinstance(provider, HttpCredentialProvider)
    finally:
        provider.close()
