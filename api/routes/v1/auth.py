"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register             -- create account, email a verification link
  POST /api/v1/auth/resend-verification  -- re-send the link; same reply for every email
  POST /api/v1/auth/login                -- password login; session + refresh cookie
  POST /api/v1/auth/refresh              -- rotate refresh cookie, return access token
  POST /api/v1/auth/logout               -- clear refresh credential, cookie and session
  POST /api/v1/auth/change-password      -- requires Principal
  POST /api/v1/auth/update-profile       -- requires Principal
  GET  /api/v1/auth/user                 -- requires Principal
  GET  /api/v1/auth/providers            -- enabled OAuth providers (public)
  POST /api/v1/auth/dev/verify           -- DEBUG only: mark an email verified

Security:
  [H2] login, register and resend-verification are rate-limited per IP.
  [C1] AuthService.authenticate() equalizes timing -- never inline the lookup.
  [M5] Cache-Control: no-store on every response that carries credentials.

Handlers are plain def: they call the SQLAlchemy store and bcrypt, both
blocking, so FastAPI runs them in its thread pool.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import (
    AccessTokenResponse,
    AccountResponse,
    ChangePasswordRequest,
    DevVerifyRequest,
    LoginRequest,
    LoginResponse,
    OAuthProviderInfo,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    SuccessResponse,
    UpdateProfileRequest,
    UserSummary,
)
from auth.dependencies import SESSION_KEY, get_current_principal, session_claim
from auth.errors import NotFoundError, UpstreamError
from auth.models import Principal, VerificationTicket
from auth.oauth import get_enabled_providers
from auth.service import AuthService
from auth.tokens import REFRESH_COOKIE_NAME

logger = logging.getLogger("boxid.api.auth")

# Auth policy:
# - register, resend-verification, login, refresh, logout, providers: public
# - change-password, update-profile, user: require a Principal
# - dev/verify: public but 404 unless DEBUG=true
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth


def _base_url(request: Request) -> str:
    configured = request.app.state.settings.public_base_url
    return configured or str(request.base_url)


def dispatch_verification(service: AuthService, ticket: VerificationTicket, base_url: str) -> None:
    """Send the verification email. Runs as a background task after the response.

    A failed delivery leaves the account pending; the user can ask for a resend.
    """
    try:
        service.verification.send(ticket, base_url)
    except UpstreamError:
        logger.exception("Verification email for account %s could not be delivered", ticket.account_id)


# ---------------------------------------------------------------------------
# Registration and verification
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse)
@limiter.limit(AUTH_RATE_LIMIT)  # [H2] below @router: FastAPI must register the wrapper that counts requests
def register(request: Request, body: RegisterRequest, background_tasks: BackgroundTasks) -> RegisterResponse:
    """Create an unverified account and email a verification link.

    Duplicate emails fail with "Email already registered" (400), including
    when a concurrent request wins the insert.
    """
    service = _service(request)
    registration = service.register(
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        role=body.role.value,
        first_name=body.first_name,
        last_name=body.last_name,
        business_name=body.business_name,
        studio_code=body.studio_code,
    )
    background_tasks.add_task(dispatch_verification, service, registration.ticket, _base_url(request))
    return RegisterResponse(message=registration.message)


@router.post("/auth/resend-verification", response_model=SuccessResponse)
@limiter.limit(AUTH_RATE_LIMIT)  # [H2] below @router: FastAPI must register the wrapper that counts requests
def resend_verification(
    request: Request, body: ResendVerificationRequest, background_tasks: BackgroundTasks
) -> SuccessResponse:
    """Re-send the verification link.

    The reply is identical whether the email is unknown, pending or verified,
    so the endpoint cannot be used to probe for accounts.
    """
    service = _service(request)
    ticket = service.verification.resend(body.email)
    if ticket is not None:
        background_tasks.add_task(dispatch_verification, service, ticket, _base_url(request))
    return SuccessResponse(message="If that account exists and is unverified, a new link has been sent")


@router.post("/auth/dev/verify", response_model=SuccessResponse)
def dev_verify(request: Request, body: DevVerifyRequest) -> SuccessResponse:
    """Mark an account verified without a token. Available only with DEBUG=true."""
    if not request.app.state.settings.debug:
        raise NotFoundError("Not found")
    _service(request).mark_verified(body.email)
    return SuccessResponse(message="User verified (dev)")


# ---------------------------------------------------------------------------
# Login / refresh / logout
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(AUTH_RATE_LIMIT)  # [H2] below @router: FastAPI must register the wrapper that counts requests
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    401 with one generic message for every credential failure; 403 with
    needs_verification for an unverified account. Neither writes a session
    or a refresh credential.
    """
    service = _service(request)
    account, tokens = service.login(body.email, body.password)

    request.session[SESSION_KEY] = session_claim(account.id, request.app.state.settings.session_max_age_seconds)
    resp = JSONResponse(
        content=LoginResponse(
            user=UserSummary(
                id=account.id,
                email=account.email,
                first_name=account.first_name,
                last_name=account.last_name,
            )
        ).model_dump()
    )
    service.tokens.set_refresh_cookie(resp, tokens.refresh_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/refresh", response_model=AccessTokenResponse)
def refresh(request: Request) -> JSONResponse:
    """Exchange the refresh cookie for an access token and rotate the cookie."""
    service = _service(request)
    tokens = service.refresh(request.cookies.get(REFRESH_COOKIE_NAME))
    resp = JSONResponse(
        content=AccessTokenResponse(
            access_token=tokens.access_token,
            expires_in=int(service.tokens.access_ttl.total_seconds()),
        ).model_dump()
    )
    service.tokens.set_refresh_cookie(resp, tokens.refresh_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(request: Request) -> JSONResponse:
    """Clear the refresh credential, the cookie and the session. Idempotent."""
    service = _service(request)
    service.logout(request.cookies.get(REFRESH_COOKIE_NAME))
    request.session.clear()
    resp = JSONResponse(content=SuccessResponse().model_dump())
    service.tokens.clear_refresh_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password", response_model=SuccessResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
) -> SuccessResponse:
    _service(request).change_password(principal, body.current_password, body.new_password)
    return SuccessResponse(message="Password changed successfully")


@router.post("/auth/update-profile", response_model=SuccessResponse)
def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    principal: Principal = Depends(get_current_principal),
) -> SuccessResponse:
    _service(request).update_profile(principal, body.display_name)
    return SuccessResponse(message="Profile updated successfully")


@router.get("/auth/user", response_model=AccountResponse)
def current_user(request: Request, principal: Principal = Depends(get_current_principal)) -> AccountResponse:
    return AccountResponse.from_account(_service(request).get_account(principal))


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers; empty when none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(request.app.state.settings)]
