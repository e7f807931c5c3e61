"""
auth/oauth.py -- Authlib registration for the external identity provider.

Google sign-in is the one delegated login path, offered on the user surface
only. build_oauth() registers the provider when both client ID and secret are
configured and returns None otherwise; the routes answer 404 when it is off.

Security notes:
  Email verification is mandatory. get_provider_identity() raises ValueError
  if the id_token does not confirm the email is verified. An unverified
  address could belong to someone else, and the engine would link the login
  to that person's account.

  The OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware, which api/main.py installs.

Layer rule: no imports from api/, accounts/, or services/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from core.config import Settings

logger = logging.getLogger("waypoint.auth.oauth")

GOOGLE = "google"


@dataclass(frozen=True)
class ProviderIdentity:
    """What the provider vouches for after a successful code exchange."""

    email: str
    subject: str
    name: str | None = None


def build_oauth(settings: Settings) -> OAuth | None:
    """Return an OAuth registry with Google registered, or None if not configured."""
    if not (settings.google_client_id and settings.google_client_secret):
        return None
    oauth = OAuth()
    oauth.register(
        name=GOOGLE,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google identity provider registered")
    return oauth


def get_provider_identity(token: dict) -> ProviderIdentity:
    """Extract the verified identity from a Google token response.

    Google returns an id_token whose parsed claims authlib exposes as
    token["userinfo"]: email, email_verified, sub, and name.

    Raises:
        ValueError: if userinfo is missing, the email is unverified, or the
            email / sub claims are absent.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            "google OAuth: email is not verified. The provider must confirm email ownership before login is allowed."
        )

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return ProviderIdentity(email=email, subject=str(subject), name=userinfo.get("name"))
