"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Wayfarer happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Settings are read once per process (get_settings() is lru_cached) from the
environment and an optional .env file. Field names map to upper-case env
vars: token_expire_seconds -> TOKEN_EXPIRE_SECONDS. List fields
(allowed_hosts, cors_origins) take JSON arrays.

SECRET_KEY signs every session token:
  - DEBUG=true and unset: a random key is generated and a warning logged.
    Every token becomes invalid on restart.
  - DEBUG unset or false and unset: startup fails.
  - Shorter than 32 characters: startup fails in either mode.

PROVIDER_URL selects the identity provider. Unset means accounts and
password hashes live in DATABASE_URL next to the user directory.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or bookings/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("wayfarer.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///wayfarer.db"

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    # Fixed 24h horizon. Tokens are never renewed; clients log in again.
    token_expire_seconds: int = 24 * 60 * 60

    # ------------------------------------------------------------------
    # Identity provider
    # ------------------------------------------------------------------

    # Empty provider_url selects the local, database-backed provider.
    provider_url: str = ""
    provider_api_key: str = ""
    provider_service_token: str = ""
    provider_timeout_seconds: float = 10.0
    password_reset_url: str = "http://localhost:3000/reset-password"

    # ------------------------------------------------------------------
    # Initial admin bootstrap (both must be set to take effect)
    # ------------------------------------------------------------------

    initial_admin_email: str = ""
    initial_admin_password: str = ""

    # ------------------------------------------------------------------
    # Rate limiting and brute-force protection
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "20 per 15 minutes"
    login_max_attempts: int = 5
    login_window_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a dev key, or refuse to start without a usable one."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "SECRET_KEY not set; using a random key. Issued tokens will not survive a restart."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def bootstrap_admin_configured(self) -> bool:
        return bool(self.initial_admin_email and self.initial_admin_password)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings.

    Tests that need other values set env vars before the first call, or call
    get_settings.cache_clear().
    """
    return Settings()
