"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Planit happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_secret_key -> ACCESS_SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation of the signing keys.
      Dev mode generates keys with a warning, production mode refuses to start
      without them.

Security notes:
  [K1] Access and refresh tokens are signed with two distinct keys. Leaking
       the access key must not allow forging refresh tokens and vice versa, so
       identical keys are rejected.

  [K2] Keys shorter than 32 chars are rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or notify/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("planit.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (as long as DEBUG=true).
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
    project_name: str = "Planit API"
    database_url: str = "sqlite:///planit_auth.db"

    # ------------------------------------------------------------------
    # Token signing -- empty string means "not configured"
    # ------------------------------------------------------------------

    access_secret_key: str = ""
    refresh_secret_key: str = ""
    # Keys the OTP code HMAC. Falls back to access_secret_key when unset.
    otp_secret_key: str = ""

    access_token_expire_seconds: int = 900
    refresh_token_expire_days: int = 30
    otp_expire_minutes: int = 10

    # bcrypt cost factor. Values below 10 are raised to 10 at hash time.
    bcrypt_rounds: int = 12

    # Login policy: unverified accounts cannot obtain tokens.
    require_verified_login: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Mail (optional -- empty host means mail is logged, not sent)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_from_name: str = "Planit"
    smtp_use_tls: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Enforce the signing key policy [K1][K2].

        Dev mode (DEBUG=true): missing keys are auto-generated with a warning.
            Issued tokens will not survive a restart.

        Production mode: refuse to start if either key is missing.
        """
        for name in ("access_secret_key", "refresh_secret_key"):
            if getattr(self, name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, name, secrets.token_hex(32))
            logger.warning("WARNING: Using auto-generated %s. Tokens will not persist across restarts.", name.upper())

        if len(self.access_secret_key) < 32 or len(self.refresh_secret_key) < 32:
            raise ValueError("ACCESS_SECRET_KEY and REFRESH_SECRET_KEY must be at least 32 characters.")
        if self.access_secret_key == self.refresh_secret_key:
            raise ValueError("ACCESS_SECRET_KEY and REFRESH_SECRET_KEY must differ.")
        if not self.otp_secret_key:
            self.otp_secret_key = self.access_secret_key
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
