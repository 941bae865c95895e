"""
auth/dependencies.py -- Principal normalization and FastAPI Depends() helpers.

Two authentication representations coexist:
  1. Session claim wrapper -- written to the signed session cookie by password
     login and the OAuth callback: {"claims": {"sub": id}, "expires_at": ts}.
  2. Authorization: Bearer <access token> -- issued by /auth/refresh.

Older sessions may also hold a bare account id, or a serialized account record
({"id": ...} / {"_id": ...}). normalize_principal() folds every one of these
shapes into a single Principal, so downstream code depends on exactly one type.

resolve_principal() runs the normalization once per request and caches the
result on request.state; calling it again is a no-op. It is also the soft
variant (returns None). get_current_principal() wraps it and raises AuthenticationError (401).

Layer rule: may import fastapi (Request) because it is part of the dependency
injection system; no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from fastapi import Request

from auth.errors import AuthenticationError
from auth.models import Account, Principal

logger = logging.getLogger("boxid.auth.dependencies")

SESSION_KEY = "user"

_UNSET = object()


def session_claim(account_id: str, max_age_seconds: int) -> dict:
    """Build the session wrapper written on login."""
    return {"claims": {"sub": account_id}, "expires_at": int(time.time()) + max_age_seconds}


def normalize_principal(raw: Any) -> Principal | None:
    """Return the Principal for any supported identity shape, or None.

    Idempotent: normalize_principal(normalize_principal(x)) == normalize_principal(x).
    """
    if raw is None:
        return None
    if isinstance(raw, Principal):
        return raw
    if isinstance(raw, Account):
        return Principal(subject_id=raw.id) if raw.id else None
    if isinstance(raw, str):
        return Principal(subject_id=raw) if raw else None
    if isinstance(raw, Mapping):
        claims = raw.get("claims")
        if isinstance(claims, Mapping):
            sub = claims.get("sub")
            return Principal(subject_id=str(sub)) if sub else None
        for key in ("subject_id", "id", "_id"):
            value = raw.get(key)
            if value:
                return Principal(subject_id=str(value))
    return None


def _session_expired(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    expires_at = raw.get("expires_at")
    if expires_at is None:
        return False
    try:
        return float(expires_at) <= time.time()
    except (TypeError, ValueError):
        return True


def _principal_from_session(request: Request) -> Principal | None:
    # request.session asserts if SessionMiddleware is not installed.
    if "session" not in request.scope:
        return None
    raw = request.session.get(SESSION_KEY)
    if raw is None:
        return None
    if _session_expired(raw):
        request.session.pop(SESSION_KEY, None)
        return None
    return normalize_principal(raw)


def _principal_from_bearer(request: Request) -> Principal | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    tokens = request.app.state.auth.tokens
    payload = tokens.decode_access_token(auth_header[7:])
    if payload is None:
        return None
    return normalize_principal(payload["sub"])


def resolve_principal(request: Request) -> Principal | None:
    """Normalize the request's identity once and cache it on request.state.

    Priority: session claim, then Bearer access token.
    """
    cached = getattr(request.state, "principal", _UNSET)
    if cached is not _UNSET:
        return cached
    principal = _principal_from_session(request) or _principal_from_bearer(request)
    request.state.principal = principal
    return principal


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises AuthenticationError if none resolves.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = resolve_principal(request)
    if principal is None:
        raise AuthenticationError("Not authenticated")
    return principal
