"""Unit tests for core/config.py -- Settings secret policy.

Covers:
- Debug mode generates distinct secrets when none are configured
- Production mode refuses to start without secrets
- Short secrets and identical access/refresh secrets are rejected
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD = {"secret_key": "s" * 32, "access_token_secret": "a" * 32, "refresh_token_secret": "r" * 32}


def test_debug_generates_distinct_secrets():
    settings = Settings(debug=True)
    assert len(settings.secret_key) >= 32
    assert settings.access_token_secret != settings.refresh_token_secret


def test_production_requires_secrets(monkeypatch):
    for name in ("SECRET_KEY", "ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET", "DEBUG"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(ValidationError):
        Settings(debug=False, _env_file=None)


def test_short_secret_rejected():
    with pytest.raises(ValidationError):
        Settings(debug=False, **{**GOOD, "access_token_secret": "short"})


def test_access_and_refresh_must_differ():
    with pytest.raises(ValidationError):
        Settings(debug=False, **{**GOOD, "refresh_token_secret": "a" * 32})


def test_explicit_secrets_accepted():
    settings = Settings(debug=False, **GOOD)
    assert settings.refresh_token_expire_seconds == 30 * 24 * 60 * 60


def test_settings_are_frozen():
    settings = Settings(debug=False, **GOOD)
    with pytest.raises(ValidationError):
        settings.debug = True
