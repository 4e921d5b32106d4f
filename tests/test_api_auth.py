"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/* routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
AccountService -> LocalCredentialProvider/UserDirectory -> response model
serialization -> exception handlers.

Coverage:
  - register: 201 with token whose sub is the new uid; camelCase wire format
  - register validation: 400 with field details (password rules, mismatch, email)
  - register duplicate: generic 400, same message for any taken email
  - login: 200 with redirectTo; one 401 message for unknown email / wrong password
  - login deactivated: 401 deactivated message only with the right password
  - login throttle: 429 with Retry-After
  - profile / verify-token: 401 without token, 403 when deactivated
  - reset-password: identical answer for known and unknown emails
  - logout: 401 without token, 200 with one (stateless)

Fixtures used (from conftest.py):
  - api_client: ApiContext with an admin and a regular user
"""

from __future__ import annotations

import pytest
from conftest import USER_PASSWORD, auth_header, register_user, unique_email
from jose import jwt

from api.routes.v1.auth import INVALID_CREDENTIALS_MESSAGE, REGISTRATION_REJECTED_MESSAGE, RESET_MESSAGE


def _login(client, email: str, password: str = USER_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_register_returns_token_and_user(self, api_client) -> None:
        email = unique_email("reg")
        data = register_user(api_client.client, email)
        assert data["user"]["email"] == email
        assert data["user"]["role"] == "user"
        assert data["user"]["isActive"] is True
        assert data["user"]["firstName"] == "Test"
        assert "password" not in data["user"]
        assert jwt.get_unverified_claims(data["token"])["sub"] == data["user"]["uid"]

    def test_register_then_login_same_subject(self, api_client) -> None:
        email = unique_email("roundtrip")
        registered = register_user(api_client.client, email)
        resp = _login(api_client.client, email)
        assert resp.status_code == 200, resp.text
        token = resp.json()["token"]
        assert jwt.get_unverified_claims(token)["sub"] == registered["user"]["uid"]

    def test_token_responses_are_not_cached(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={
                "email": unique_email("cache"),
                "password": USER_PASSWORD,
                "confirmPassword": USER_PASSWORD,
                "firstName": "No",
                "lastName": "Store",
            },
        )
        assert resp.status_code == 201
        assert resp.headers["Cache-Control"] == "no-store"

    def test_password_mismatch(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={
                "email": unique_email(),
                "password": USER_PASSWORD,
                "confirmPassword": "Different1",
                "firstName": "A",
                "lastName": "B",
            },
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        assert {"confirmPassword"} == {d["field"] for d in body["details"]}

    def test_password_rules(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={
                "email": unique_email(),
                "password": "alllowercase1",
                "confirmPassword": "alllowercase1",
                "firstName": "A",
                "lastName": "B",
            },
        )
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "password"

    def test_missing_fields(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/register", json={"email": "not-an-email"})
        assert resp.status_code == 400
        fields = {d["field"] for d in resp.json()["details"]}
        assert {"email", "password", "confirmPassword", "firstName", "lastName"} <= fields

    @pytest.mark.parametrize("email", ["a@b..c", "a@@example.com", "a b@example.com", "a@example."])
    def test_malformed_email(self, api_client, email: str) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={
                "email": email,
                "password": USER_PASSWORD,
                "confirmPassword": USER_PASSWORD,
                "firstName": "A",
                "lastName": "B",
            },
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert [d["field"] for d in resp.json()["details"]] == ["email"]

    def test_email_is_lower_cased(self, api_client) -> None:
        email = unique_email("Mixed").replace("example.com", "Example.COM")
        data = register_user(api_client.client, email)
        assert data["user"]["email"] == email.lower()

    def test_duplicate_email_is_generic(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/register",
            json={
                "email": api_client.user_email.upper(),
                "password": USER_PASSWORD,
                "confirmPassword": USER_PASSWORD,
                "firstName": "A",
                "lastName": "B",
            },
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == REGISTRATION_REJECTED_MESSAGE
        assert "exist" not in resp.json()["error"].lower()


class TestLogin:
    def test_login_user_redirects_home(self, api_client) -> None:
        resp = _login(api_client.client, api_client.user_email)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["redirectTo"] == "/"
        assert data["user"]["lastLogin"] is not None
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_admin_redirects_to_admin(self, api_client) -> None:
        resp = _login(api_client.client, api_client.admin_email, "Admin123!@#")
        assert resp.status_code == 200, resp.text
        assert resp.json()["redirectTo"] == "/admin"

    def test_unknown_email_and_wrong_password_identical(self, api_client) -> None:
        email = register_user(api_client.client)["user"]["email"]
        wrong_password = _login(api_client.client, email, "Wrong1234")
        unknown_email = _login(api_client.client, unique_email("ghost"))
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()
        assert wrong_password.json()["error"] == INVALID_CREDENTIALS_MESSAGE

    def test_deactivated_account(self, api_client) -> None:
        registered = register_user(api_client.client)
        email, uid = registered["user"]["email"], registered["user"]["uid"]
        resp = api_client.client.put(
            f"/api/v1/admin/users/{uid}/status",
            json={"isActive": False},
            headers=auth_header(api_client.admin_token),
        )
        assert resp.status_code == 200, resp.text

        wrong = _login(api_client.client, email, "Wrong1234")
        assert wrong.json()["error"] == INVALID_CREDENTIALS_MESSAGE
        right = _login(api_client.client, email)
        assert right.status_code == 401
        assert right.json()["code"] == "account_deactivated"

    def test_throttle(self, api_client) -> None:
        email = register_user(api_client.client)["user"]["email"]
        for _ in range(api_client.services.throttle.max_attempts):
            assert _login(api_client.client, email, "Wrong1234").status_code == 401
        resp = _login(api_client.client, email)
        assert resp.status_code == 429
        assert resp.json()["code"] == "too_many_attempts"
        assert int(resp.headers["Retry-After"]) >= 1


class TestSession:
    def test_profile_requires_token(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/profile")
        assert resp.status_code == 401
        assert resp.json()["code"] == "missing_token"

    def test_profile(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/profile", headers=auth_header(api_client.user_token))
        assert resp.status_code == 200
        assert resp.json()["user"]["uid"] == api_client.user_uid

    def test_invalid_token(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/profile", headers=auth_header("not.a.token"))
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"

    def test_verify_token(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/verify-token", headers=auth_header(api_client.user_token))
        assert resp.status_code == 200
        assert resp.json()["valid"] is True
        assert resp.json()["user"]["email"] == api_client.user_email

    def test_deactivation_blocks_outstanding_token(self, api_client) -> None:
        registered = register_user(api_client.client)
        headers = auth_header(registered["token"])
        assert api_client.client.get("/api/v1/auth/profile", headers=headers).status_code == 200

        api_client.client.put(
            f"/api/v1/admin/users/{registered['user']['uid']}/status",
            json={"isActive": False},
            headers=auth_header(api_client.admin_token),
        )
        resp = api_client.client.get("/api/v1/auth/profile", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["code"] == "account_deactivated"

    def test_deleted_user_token_is_unauthenticated(self, api_client) -> None:
        registered = register_user(api_client.client)
        api_client.client.delete(
            f"/api/v1/admin/users/{registered['user']['uid']}",
            headers=auth_header(api_client.admin_token),
        )
        resp = api_client.client.get("/api/v1/auth/profile", headers=auth_header(registered["token"]))
        assert resp.status_code == 401

    def test_logout_requires_token(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/logout")
        assert resp.status_code == 401
        assert resp.json()["code"] == "missing_token"

    def test_logout(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/logout", headers=auth_header(api_client.user_token))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"


class TestResetPassword:
    def test_known_and_unknown_email_same_message(self, api_client) -> None:
        known = api_client.client.post("/api/v1/auth/reset-password", json={"email": api_client.user_email})
        unknown = api_client.client.post("/api/v1/auth/reset-password", json={"email": unique_email("ghost")})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"] == RESET_MESSAGE

    def test_debug_mode_echoes_link_for_known_email(self, api_client) -> None:
        known = api_client.client.post("/api/v1/auth/reset-password", json={"email": api_client.user_email})
        unknown = api_client.client.post("/api/v1/auth/reset-password", json={"email": unique_email("ghost")})
        assert "resetPassword" in known.json()["resetLink"]
        assert "resetLink" not in unknown.json()

    def test_invalid_email(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/reset-password", json={"email": "nope"})
        assert resp.status_code == 400
