"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CredVault happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. encryption_key -> ENCRYPTION_KEY). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Startup fails here, not at the first
      request, when a secret is missing or has the wrong length.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
    relies on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
    hard startup failure.

  ENCRYPTION_KEY must be exactly 32 characters (AES-256). There is no
    dev-mode fallback: a generated key would make every stored credential
    unreadable after a restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, vault/, audit/, or notify/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("credvault.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'credvault.db'}"

ENCRYPTION_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except ENCRYPTION_KEY has a default. SECRET_KEY has one only
    in DEBUG mode.
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
    app_name: str = "CredVault"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    encryption_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 8 * 3600
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------

    cors_origin: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["*"]

    # Global ceiling: rate_limit_max requests per rate_limit_window_seconds per IP.
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Outbound email (optional -- empty smtp_host disables delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_ssl: bool = True
    smtp_timeout_seconds: int = 10
    email_from: str = ""
    login_url: str = "http://localhost:3000/login"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the SECRET_KEY and ENCRYPTION_KEY policies.

        Dev mode (DEBUG=true) auto-generates a SECRET_KEY with a warning;
        tokens will not survive a restart. ENCRYPTION_KEY is never generated.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if len(self.encryption_key) != ENCRYPTION_KEY_LENGTH:
            raise ValueError(f"ENCRYPTION_KEY must be exactly {ENCRYPTION_KEY_LENGTH} characters long.")
        return self

    @property
    def default_rate_limit(self) -> str:
        """Global slowapi limit string, e.g. '100/900 seconds'."""
        return f"{self.rate_limit_max}/{self.rate_limit_window_seconds} seconds"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
