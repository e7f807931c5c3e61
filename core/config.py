"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Waypoint Identity happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
and pass the values it needs into constructors at startup.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, smtp_host -> SMTP_HOST).

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode generates a signing key with a warning; production
      mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Access, refresh,
  verification and reset tokens are all HS256-signed with it.

  bcrypt_rounds below 10 is rejected. Each hash must stay expensive enough to
  make offline brute force impractical.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, accounts/, or services/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("waypoint.config")


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
    # Optional separate key for refresh tokens. Falls back to secret_key.
    refresh_secret_key: str = ""
    database_url: str = "sqlite:///waypoint_identity.db"
    # Public base URL used to build links in verification and reset emails.
    base_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Tokens and credentials
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 3600
    refresh_token_expire_days: int = 7
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Outbound email (empty smtp_host = log-only dev mode)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = ""

    # ------------------------------------------------------------------
    # Avatar blob storage
    # ------------------------------------------------------------------

    blob_storage_dir: str = "blobs"
    blob_public_base_url: str = "http://localhost:8000/blobs"
    avatar_max_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # External identity provider (optional -- empty means disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive a restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.refresh_secret_key and len(self.refresh_secret_key) < 32:
            raise ValueError("REFRESH_SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_bcrypt_rounds(self) -> "Settings":
        if self.bcrypt_rounds < 10:
            raise ValueError("BCRYPT_ROUNDS must be at least 10.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
