"""
web/routes.py -- Browser-facing routes for boxid.

These routes serve HTML and redirects rather than JSON. They share app.state
with the API routes (same AuthService, settings and OAuth registry).

Route registration order: /login/oauth/{provider} and /login/callback/{provider}
are the only /login sub-paths; keep any future GET /login after them.

Routes:
  GET  /verify-email?token=...       -- consume a verification link, render result page
  GET  /login/oauth/{provider}       -- redirect to the provider's authorization page
  GET  /login/callback/{provider}    -- OAuth callback: link or create account, sign in
"""

import logging
from pathlib import Path

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import SESSION_KEY, session_claim
from auth.errors import AuthServiceError, NotFoundError, ValidationError, VerificationExpiredError
from auth.oauth import get_enabled_providers, get_oauth_user_info

logger = logging.getLogger("boxid.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_OAUTH_FAILED = "/?error=oauth_failed"


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.get("/verify-email", response_class=HTMLResponse)
def verify_email(request: Request, token: str = "") -> HTMLResponse:
    """Consume the link token and render a success or failure page.

    Expired and unknown tokens render different messages so the user knows
    whether to ask for a new link. Neither changes the account.
    """
    service = request.app.state.auth
    try:
        account = service.verification.verify(token)
    except (ValidationError, NotFoundError, VerificationExpiredError) as exc:
        return templates.TemplateResponse(
            request,
            "verify.html",
            {"verified": False, "expired": isinstance(exc, VerificationExpiredError), "message": exc.message},
            status_code=exc.status_code,
        )
    return templates.TemplateResponse(
        request,
        "verify.html",
        {"verified": True, "expired": False, "message": "Email verified. You can now log in.", "email": account.email},
    )


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


def _provider_enabled(request: Request, provider: str) -> bool:
    return provider in {p["name"] for p in get_enabled_providers(request.app.state.settings)}


@router.get("/login/oauth/{provider}", response_class=HTMLResponse)
async def oauth_redirect(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the OAuth provider's authorization page.

    The provider name is checked against the enabled list so a crafted name
    cannot reach the registry.
    """
    if not _provider_enabled(request, provider):
        return RedirectResponse(_OAUTH_FAILED, status_code=302)

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/login/callback/{provider}", response_class=HTMLResponse, name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Handle the OAuth provider callback and sign the user in.

    Flow:
      1. Exchange authorization code for token (authlib checks state via the session).
      2. Extract the identity assertion -- ValueError if the email is unverified [H1].
      3. OAuthLinker finds, links or creates the account.
      4. Write the session claim, set the refresh cookie, redirect to /.
    """
    if not _provider_enabled(request, provider):
        return RedirectResponse(_OAUTH_FAILED, status_code=302)

    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return RedirectResponse(_OAUTH_FAILED, status_code=302)

    try:
        identity = get_oauth_user_info(provider, token)
    except ValueError:
        logger.warning("OAuth login rejected: unverified or missing email from %r", provider)
        return RedirectResponse(_OAUTH_FAILED, status_code=302)

    service = request.app.state.auth
    try:
        # Store and bcrypt calls block; keep them off the event loop.
        result, tokens = await run_in_threadpool(service.login_external, identity)
    except AuthServiceError:
        logger.exception("OAuth account resolution failed for provider %r", provider)
        return RedirectResponse(_OAUTH_FAILED, status_code=302)

    request.session[SESSION_KEY] = session_claim(result.account.id, request.app.state.settings.session_max_age_seconds)
    resp = RedirectResponse("/", status_code=302)
    service.tokens.set_refresh_cookie(resp, tokens.refresh_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
