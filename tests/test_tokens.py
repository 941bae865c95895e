"""Unit tests for auth/tokens.py -- access and refresh JWTs plus the refresh cookie.

Covers:
- Access and refresh tokens decode back to their subject
- Each token class is rejected by the other class's decoder (separate secrets)
- Two refresh tokens for the same subject differ (per-issuance tid)
- Expired, tampered and empty tokens decode to None
- The refresh cookie is httpOnly, SameSite=Lax and scoped to /api/v1/auth
"""

from datetime import datetime, timedelta, timezone

from jose import jwt
from starlette.responses import Response

from auth.tokens import REFRESH_COOKIE_NAME, REFRESH_COOKIE_PATH, TokenService
from core.config import Settings

settings = Settings(debug=True, access_token_expire_seconds=60, refresh_token_expire_days=2)
tokens = TokenService(settings)


class TestAccessTokens:
    def test_round_trip(self):
        payload = tokens.decode_access_token(tokens.create_access_token("acct-1"))
        assert payload["sub"] == "acct-1"
        assert payload["exp"] - payload["iat"] == 60

    def test_refresh_token_is_not_an_access_token(self):
        assert tokens.decode_access_token(tokens.create_refresh_token("acct-1")) is None

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode(
            {"sub": "acct-1", "iat": past, "exp": past + timedelta(seconds=1)},
            settings.access_token_secret,
            algorithm="HS256",
        )
        assert tokens.decode_access_token(token) is None

    def test_tampered_token_rejected(self):
        header, _, signature = tokens.create_access_token("acct-1").split(".")
        other_payload = tokens.create_access_token("acct-2").split(".")[1]
        assert tokens.decode_access_token(".".join([header, other_payload, signature])) is None

    def test_empty_token_rejected(self):
        assert tokens.decode_access_token("") is None


class TestRefreshTokens:
    def test_round_trip_carries_tid(self):
        payload = tokens.decode_refresh_token(tokens.create_refresh_token("acct-1"))
        assert payload["sub"] == "acct-1"
        assert len(payload["tid"]) == 32

    def test_same_subject_same_second_differs(self):
        assert tokens.create_refresh_token("acct-1") != tokens.create_refresh_token("acct-1")

    def test_access_token_is_not_a_refresh_token(self):
        assert tokens.decode_refresh_token(tokens.create_access_token("acct-1")) is None

    def test_token_without_tid_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "acct-1", "iat": now, "exp": now + timedelta(days=1)},
            settings.refresh_token_secret,
            algorithm="HS256",
        )
        assert tokens.decode_refresh_token(token) is None


class TestRefreshCookie:
    def test_cookie_attributes(self):
        response = Response()
        tokens.set_refresh_cookie(response, "tok")
        header = response.headers["set-cookie"]
        assert header.startswith(f"{REFRESH_COOKIE_NAME}=tok")
        assert f"Path={REFRESH_COOKIE_PATH}" in header
        assert "HttpOnly" in header
        assert "SameSite=lax" in header
        assert f"Max-Age={2 * 24 * 60 * 60}" in header
        assert "Secure" not in header

    def test_clear_cookie_expires_it(self):
        response = Response()
        tokens.clear_refresh_cookie(response)
        header = response.headers["set-cookie"]
        assert header.startswith(f'{REFRESH_COOKIE_NAME}=""')
        assert "Max-Age=0" in header
