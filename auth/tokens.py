"""
auth/tokens.py -- JWT encode/decode and refresh cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, two secrets:
       access tokens  -- {sub, iat, exp}, short-lived, never stored.
       refresh tokens -- {sub, tid, iat, exp}, long-lived, stored only as a
                         bcrypt hash on the account (auth/passwords.py).
       tid is a fresh random id per issuance, so two refresh tokens minted for
       the same account in the same second still differ.

  Decoding returns None on any failure (bad signature, expiry, missing claim).
  The service layer turns None into AuthenticationError; raw JWTError never
  leaves this module.

  Refresh cookie: httpOnly, SameSite=Lax, Path=/api/v1/auth so the browser
       only sends it to the auth endpoints, secure when SECURE_COOKIES=true.

Layer rule: no imports from api/ or web/. Settings arrive through the
constructor.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("boxid.auth.tokens")

_ALGORITHM = "HS256"

REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/api/v1/auth"


def generate_token_id() -> str:
    """Return a random per-issuance instance id (128 bits, hex)."""
    return secrets.token_hex(16)


class TokenService:
    """Mints and verifies access and refresh tokens."""

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.access_token_secret
        self._refresh_secret = settings.refresh_token_secret
        self.access_ttl = timedelta(seconds=settings.access_token_expire_seconds)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)
        self._secure_cookies = settings.secure_cookies

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def create_access_token(self, subject_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": subject_id, "iat": now, "exp": now + self.access_ttl}
        return jwt.encode(payload, self._access_secret, algorithm=_ALGORITHM)

    def decode_access_token(self, token: str) -> dict | None:
        return self._decode(token, self._access_secret)

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(self, subject_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "tid": generate_token_id(),
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=_ALGORITHM)

    def decode_refresh_token(self, token: str) -> dict | None:
        payload = self._decode(token, self._refresh_secret)
        if payload is None or "tid" not in payload:
            return None
        return payload

    def _decode(self, token: str, secret: str) -> dict | None:
        if not token:
            return None
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        return payload

    # ------------------------------------------------------------------
    # Cookie helpers
    # ------------------------------------------------------------------

    def set_refresh_cookie(self, response, token: str) -> None:
        """Write the refresh token as a scoped httpOnly cookie.

        max_age matches the refresh token expiry so both lapse together.
        """
        response.set_cookie(
            REFRESH_COOKIE_NAME,
            value=token,
            max_age=int(self.refresh_ttl.total_seconds()),
            path=REFRESH_COOKIE_PATH,
            httponly=True,
            samesite="lax",
            secure=self._secure_cookies,
        )

    def clear_refresh_cookie(self, response) -> None:
        response.delete_cookie(
            REFRESH_COOKIE_NAME,
            path=REFRESH_COOKIE_PATH,
            httponly=True,
            samesite="lax",
            secure=self._secure_cookies,
        )
