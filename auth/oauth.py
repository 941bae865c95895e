"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

build_oauth() registers every provider whose client id and secret are both
configured. The registry is built once at startup and stored on app.state;
nothing here reads configuration at import time.

Security notes:
  [H1] The provider must confirm the email is verified. An unverified email
       could be a victim's address added to an attacker's provider account,
       and the linker would then merge into the victim's local account.

  OAuth state (CSRF protection) is handled by authlib through Starlette's
  SessionMiddleware: the state is stored in the session before the redirect
  and checked in the callback.

Supported providers:
  google -- Authorization code flow with OIDC discovery.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from authlib.integrations.starlette_client import OAuth

from auth.models import ExternalIdentity

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("boxid.auth.oauth")

_GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


def build_oauth(settings: Settings) -> OAuth:
    oauth = OAuth()
    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=_GOOGLE_METADATA_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every configured provider."""
    providers: list[dict] = []
    if settings.google_client_id and settings.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    return providers


def get_oauth_user_info(provider: str, token: dict) -> ExternalIdentity:
    """Extract the identity assertion from a provider token response.

    Raises:
        ValueError: unknown provider, missing claims, or unverified email [H1].
    """
    if provider != "google":
        raise ValueError(f"Unknown OAuth provider: {provider!r}")

    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError(f"{provider} OAuth: no userinfo in token response")

    # Some OIDC providers omit email_verified entirely; treat that as unverified.
    if not userinfo.get("email_verified", False):
        raise ValueError(f"{provider} OAuth: email is not verified")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError(f"{provider} OAuth: missing email or sub claim in userinfo")

    return ExternalIdentity(
        subject=str(subject),
        email=email,
        display_name=userinfo.get("name"),
        given_name=userinfo.get("given_name"),
        family_name=userinfo.get("family_name"),
        picture=userinfo.get("picture"),
    )
