"""
api/main.py -- FastAPI application factory for boxid.

Exposes the identity core over HTTP: registration, verification, login,
refresh-token rotation, logout and account self-service.

Run with:  uvicorn asgi:app --reload

Middleware stack (registration order):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- default limits; decorated routes check their own
  4. SessionMiddleware     -- signed session cookie (Principal claim, OAuth state)

Lifespan builds the account store, mailer, AuthService and OAuth registry
and puts them on app.state. Nothing is created at import time: tests call
create_app() with their own Settings and store.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthServiceError
from auth.mailer import Mailer, build_mailer
from auth.oauth import build_oauth
from auth.service import AuthService
from auth.store import AccountStore
from core.config import Settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("boxid.api")


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


def create_app(settings: Settings, store: AccountStore | None = None, mailer: Mailer | None = None) -> FastAPI:
    """Build the API application.

    Args:
        settings: Validated configuration. Read once here; routes reach it
                  through app.state.settings.
        store:    Optional pre-built AccountStore. When omitted, lifespan opens
                  one from settings.database_url and disposes it on shutdown.
        mailer:   Optional mail transport. Defaults to build_mailer(settings).
    """

    # -----------------------------------------------------------------------
    # Lifespan -- startup / shutdown
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("boxid API starting up (debug=%s)", settings.debug)
        owns_store = store is None
        account_store = store if store is not None else AccountStore(db_url=settings.database_url)
        app.state.settings = settings
        app.state.store = account_store
        app.state.auth = AuthService(settings, account_store, mailer or build_mailer(settings))
        app.state.oauth = build_oauth(settings)
        logger.info("Auth initialized")

        yield

        if owns_store:
            account_store.close()
        logger.info("boxid API shutdown complete")

    app = FastAPI(
        title="boxid API",
        description="Accounts, email verification and session tokens for The Box.",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Middleware stack
    # -----------------------------------------------------------------------

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.add_middleware(SlowAPIMiddleware)

    # Holds the Principal claim after login and the OAuth state value that
    # authlib checks between the authorization redirect and the callback.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.secure_cookies,
    )

    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    # -----------------------------------------------------------------------
    # Request logging middleware
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Router registration
    # -----------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    # Web routes are mounted by asgi.py, not here.

    # -----------------------------------------------------------------------
    # Exception handlers
    #
    # Every handler returns the same ErrorResponse envelope so clients parse
    # errors uniformly.
    # -----------------------------------------------------------------------

    @app.exception_handler(AuthServiceError)
    async def auth_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
        """Render a domain error with its status, code and any extra fields."""
        content = ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(exclude_none=True)
        content.update(exc.extra)
        response = JSONResponse(status_code=exc.status_code, content=content)
        response.headers["Cache-Control"] = "no-store"  # [M5]
        return response

    # Plain def: SlowAPIMiddleware may call this handler directly, without awaiting.
    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error when a rate limit is exceeded."""
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error_response(429, "rate_limited", "Too many requests.", detail=str(exc.detail))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies are client errors like any other validation failure: 400."""
        return _error_response(400, "validation_error", "Request validation failed.", detail=str(exc.errors()))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The exception is logged; the client receives only a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")

    # -----------------------------------------------------------------------
    # Health endpoint -- not rate limited
    # -----------------------------------------------------------------------

    @app.get("/api/v1/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Return API liveness, version and database reachability."""
        db_ok = request.app.state.store.ping()
        return HealthResponse(
            version=API_VERSION,
            components={"app": "ok", "database": "ok" if db_ok else "error"},
        )

    return app
