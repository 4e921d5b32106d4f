"""
auth/accounts.py -- Account lifecycle: registration, login, admin actions.

AccountService composes the credential provider (passwords, account state at
the provider) with the user directory (profiles, roles, active flag). Route
handlers call one method per request; this module owns the ordering of the
two writes and the rules that span them.

Anti-enumeration policy (applied uniformly):
  - login: unknown email, wrong password and a provider account with no
    profile all raise the same InvalidCredentials. AccountDisabled is only
    reachable after the password has been verified.
  - register: an already-registered email raises RegistrationRejected with
    the same message the route uses for any non-field failure.
  - password reset: request_password_reset() returns None for unknown
    emails; the route answers identically either way.

Self-protection: an admin acting on its own uid may not demote itself,
deactivate itself, or delete itself. Checked here, before any write, by
comparing actor.uid with the target uid.

Layer rule: no imports from api/ or bookings/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.directory import UserDirectory, normalize_email
from auth.models import ROLE_ADMIN, ROLE_USER, ROLES, IdentityContext, User
from auth.provider import (
    AccountDisabled,
    AccountNotFound,
    CredentialProvider,
    DuplicateEmail,
    InvalidCredentials,
)
from auth.throttle import LoginThrottle
from core.errors import Conflict, Forbidden, NotFound, TooManyAttempts, ValidationError

logger = logging.getLogger("wayfarer.auth.accounts")

BOOTSTRAP_CREATOR = "system"


class RegistrationRejected(Exception):
    """Registration failed for a reason that must not be disclosed."""


class AccountService:
    """Account operations spanning the provider and the directory.

    Usage:
        service = AccountService(provider, directory, LoginThrottle())
        user = service.register("alice@example.com", "Passw0rd!", "Alice", "Liddell")
        user = service.login("alice@example.com", "Passw0rd!")
    """

    def __init__(self, provider: CredentialProvider, directory: UserDirectory, throttle: LoginThrottle) -> None:
        self.provider = provider
        self.directory = directory
        self.throttle = throttle

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, first_name: str = "", last_name: str = "") -> User:
        """Create a provider account and a role=user profile.

        Raises RegistrationRejected for a duplicate email; WeakPassword and
        InvalidEmail from the provider propagate for field-level reporting.
        """
        return self._create(email, password, ROLE_USER, first_name, last_name, created_by=None)

    def login(self, email: str, password: str) -> User:
        """Verify credentials and return the live profile.

        Raises:
            TooManyAttempts:    the failure window for this email is exhausted.
            InvalidCredentials: unknown email, wrong password, or no profile.
            AccountDisabled:    correct password, deactivated account.
        """
        email = normalize_email(email)
        if self.throttle.is_locked(email):
            raise TooManyAttempts(
                "Too many failed login attempts. Please try again later.",
                retry_after=self.throttle.retry_after(email),
            )
        try:
            uid = self.provider.verify_password(email, password)
        except InvalidCredentials:
            self.throttle.record_failure(email)
            raise
        user = self.directory.get_by_id(uid)
        if user is None:
            logger.warning("Provider account %s has no directory profile", uid)
            self.throttle.record_failure(email)
            raise InvalidCredentials()
        self.throttle.reset(email)
        if not user.is_active:
            raise AccountDisabled()
        self.directory.touch_last_login(uid)
        return self.directory.get_by_id(uid) or user

    def request_password_reset(self, email: str) -> str | None:
        """Return a reset link, or None when the email is unknown."""
        link = self.provider.issue_password_reset(normalize_email(email))
        if link is None:
            logger.info("Password reset requested for an unknown email")
        return link

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_admin(
        self, actor: IdentityContext, email: str, password: str, first_name: str, last_name: str
    ) -> User:
        """Create an admin account. Admins may learn that an email is taken."""
        try:
            return self._create(email, password, ROLE_ADMIN, first_name, last_name, created_by=actor.uid)
        except RegistrationRejected as exc:
            raise Conflict("User already exists with this email.", code="email_exists") from exc

    def get_user(self, uid: str) -> User:
        user = self.directory.get_by_id(uid)
        if user is None:
            raise NotFound("User not found.")
        return user

    def set_role(self, actor: IdentityContext, uid: str, role: str) -> User:
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        if uid == actor.uid and role != ROLE_ADMIN:
            raise Forbidden("You cannot change your own role to user.", code="self_demotion")
        self.get_user(uid)
        self.directory.update_role(uid, role)
        logger.info("Role of %s set to %s by %s", uid, role, actor.uid)
        return self.get_user(uid)

    def set_status(self, actor: IdentityContext, uid: str, active: bool) -> User:
        if uid == actor.uid and not active:
            raise Forbidden("You cannot deactivate your own account.", code="self_deactivation")
        self.get_user(uid)
        try:
            if active:
                self.provider.enable_account(uid)
            else:
                self.provider.disable_account(uid)
        except AccountNotFound:
            logger.warning("Provider has no account for %s; updating directory only", uid)
        self.directory.update_status(uid, active)
        logger.info("User %s %s by %s", uid, "activated" if active else "deactivated", actor.uid)
        return self.get_user(uid)

    def delete_user(self, actor: IdentityContext, uid: str) -> User:
        """Hard delete: provider account first, then the profile."""
        if uid == actor.uid:
            raise Forbidden("You cannot delete your own account.", code="self_deletion")
        user = self.get_user(uid)
        try:
            self.provider.delete_account(uid)
        except AccountNotFound:
            logger.warning("Provider has no account for %s; purging profile only", uid)
        self.directory.delete(uid)
        logger.info("User %s deleted by %s", uid, actor.uid)
        return user

    def ensure_initial_admin(self, email: str, password: str) -> User:
        """Create the bootstrap admin, or promote an existing account. Idempotent."""
        existing = self.directory.get_by_email(email)
        if existing is not None:
            if existing.role != ROLE_ADMIN:
                self.directory.update_role(existing.uid, ROLE_ADMIN)
                logger.info("Promoted existing account %s to admin", existing.uid)
            return self.directory.get_by_id(existing.uid)
        user = self._create(email, password, ROLE_ADMIN, "System", "Administrator", created_by=BOOTSTRAP_CREATOR)
        logger.info("Initial admin account created (%s)", user.uid)
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create(
        self,
        email: str,
        password: str,
        role: str,
        first_name: str,
        last_name: str,
        created_by: str | None,
    ) -> User:
        email = normalize_email(email)
        if self.directory.get_by_email(email) is not None:
            raise RegistrationRejected(email)
        try:
            uid = self.provider.create_account(email, password)
        except DuplicateEmail as exc:
            raise RegistrationRejected(email) from exc

        profile = User(
            uid=uid,
            email=email,
            role=role,
            first_name=first_name,
            last_name=last_name,
            created_by=created_by,
        )
        try:
            return self.directory.create(uid, profile)
        except IntegrityError as exc:
            self._discard_provider_account(uid)
            raise RegistrationRejected(email) from exc
        except Exception:
            self._discard_provider_account(uid)
            raise

    def _discard_provider_account(self, uid: str) -> None:
        """Best-effort compensation when the profile write fails."""
        try:
            self.provider.delete_account(uid)
        except Exception:
            logger.exception("Could not remove orphaned provider account %s", uid)
