"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the Exa platform happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET, node_env -> NODE_ENV).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Development mode generates a session secret with a warning;
      production mode refuses to start without one.

Security notes:
  [M6] SESSION_SECRET shorter than 32 chars is rejected outright. HS256 token
       signing and the one-time token HMAC both rely on key entropy.

  [M7] With NODE_ENV=production a missing SESSION_SECRET is a hard startup
       failure. A random key would silently invalidate every session cookie
       on each restart.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, business/, credits/, or mail/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("exa.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'exa.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. List fields accept JSON in the
    environment, e.g. CORS_ALLOWED_ORIGINS='["https://app.sendexa.co"]'.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    node_env: str = "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    session_secret: str = ""
    database_url: str = _DEFAULT_DB_URL

    # Public base URLs. FRONTEND_URL is used for links in outgoing email,
    # APP_URL prefixes stored upload paths (business logo, certificate).
    frontend_url: str = "http://localhost:3000"
    app_url: str = "http://localhost:2806"

    # ------------------------------------------------------------------
    # Sessions and tokens
    # ------------------------------------------------------------------

    session_cookie_name: str = "exa-session"
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    # Default lifetime for sign_token() callers that do not pass their own.
    token_expire_seconds: int = 24 * 60 * 60

    verification_token_ttl_seconds: int = 24 * 60 * 60
    reset_token_ttl_seconds: int = 60 * 60
    otp_ttl_seconds: int = 10 * 60
    otp_max_attempts: int = 5
    login_otp_enabled: bool = False

    invitation_ttl_days: int = 7
    api_key_ttl_days: int = 365
    max_api_keys_per_business: int = 10

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_allowed_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Email (SMTP). An empty host disables delivery; messages are logged.
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from_name: str = "Exa Dashboard"

    @property
    def is_production(self) -> bool:
        return self.node_env.lower() == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_secret(self) -> "Settings":
        """Enforce the SESSION_SECRET policy [M7].

        Development (any NODE_ENV other than production): auto-generate a
            random key with a warning. Sessions will not survive restart.

        Production: refuse to start if SESSION_SECRET is missing.

        Both: reject keys shorter than 32 characters [M6].
        """
        if not self.session_secret:
            if not self.is_production:
                self.session_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated SESSION_SECRET. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SESSION_SECRET is required when NODE_ENV=production. "
                    "Set SESSION_SECRET in your environment or .env file."
                )
        if len(self.session_secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
