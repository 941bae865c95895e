"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for boxid happen here. No module should call
os.getenv() or os.environ.get() directly.

Design:
  Settings is frozen. It is built exactly once at a process entry point
  (asgi.py, main.py) and passed into create_app() and every component
  constructor. Business modules receive the values they need; they never call
  get_settings() themselves.

  BaseSettings (pydantic-settings): reads environment variables and an
  optional .env file. Field names map to env var names
  (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

Security notes:
  [M6] Secrets shorter than 32 chars are rejected. JWT signing and the session
       cookie signature both rely on key entropy.

  [M7] Outside debug mode a missing secret is a hard startup failure.

  Access and refresh tokens are signed with different secrets so a leak of one
  key cannot be used to mint the other token class.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Any

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("boxid.config")

_SECRET_FIELDS = ("secret_key", "access_token_secret", "refresh_token_secret")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    tests without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = "sqlite:///boxid.db"
    # Used to build verification links. Empty means "derive from the request".
    public_base_url: str = ""

    # ------------------------------------------------------------------
    # Secrets -- empty string is the "not configured" sentinel
    # ------------------------------------------------------------------

    secret_key: str = ""  # session cookie signing
    access_token_secret: str = ""
    refresh_token_secret: str = ""

    # ------------------------------------------------------------------
    # Tokens, sessions, cookies
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_days: int = 30
    session_max_age_seconds: int = 7 * 24 * 60 * 60
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10
    password_min_length: int = 6
    verification_ttl_hours: int = 24
    alias_max_attempts: int = 10

    # ------------------------------------------------------------------
    # OAuth (empty string means the provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Outbound email (empty smtp_host means log-only delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 25
    smtp_sender: str = "The Box <no-reply@thebox.local>"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:5173", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def fill_dev_secrets(cls, data: Any) -> Any:
        """Generate missing secrets in debug mode [M7].

        Runs before field validation because the model is frozen; the
        generated values have to be part of the input, not assigned after.
        Each secret gets its own random value so access and refresh keys
        never coincide.
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).strip().lower() in ("1", "true", "yes", "on")
        if not debug:
            return data
        data = dict(data)
        for name in _SECRET_FIELDS:
            if not data.get(name):
                data[name] = secrets.token_hex(32)
                logger.warning("Using auto-generated %s. Sessions will not persist across restarts.", name.upper())
        return data

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [M6] [M7]."""
        for name in _SECRET_FIELDS:
            value = getattr(self, name)
            if not value:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            if len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        return self

    @property
    def refresh_token_expire_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance.

    Call only from entry points (asgi.py, main.py). Components receive the
    instance through their constructors.

    In tests: construct Settings(...) directly instead.
    """
    return Settings()
