"""Unit tests for auth/oauth.py -- provider registration and identity extraction."""

import pytest

from auth.oauth import build_oauth, get_provider_identity
from core.config import Settings

KEY = "o" * 32


def test_oauth_disabled_without_client_credentials():
    assert build_oauth(Settings(secret_key=KEY, _env_file=None)) is None
    assert build_oauth(Settings(secret_key=KEY, google_client_id="id-only", _env_file=None)) is None


def test_oauth_registers_google_when_configured():
    settings = Settings(secret_key=KEY, google_client_id="cid", google_client_secret="csecret", _env_file=None)
    oauth = build_oauth(settings)
    assert oauth is not None
    assert oauth.create_client("google") is not None


def test_verified_identity_is_extracted():
    token = {"userinfo": {"email": "gina@example.com", "email_verified": True, "sub": 1234, "name": "Gina"}}
    identity = get_provider_identity(token)
    assert identity.email == "gina@example.com"
    assert identity.subject == "1234"
    assert identity.name == "Gina"


@pytest.mark.parametrize(
    "token",
    [
        {},
        {"userinfo": {"email": "a@example.com", "sub": "1"}},
        {"userinfo": {"email": "a@example.com", "email_verified": False, "sub": "1"}},
        {"userinfo": {"email_verified": True, "sub": "1"}},
        {"userinfo": {"email": "a@example.com", "email_verified": True}},
    ],
)
def test_unverified_or_incomplete_identity_rejected(token):
    with pytest.raises(ValueError):
        get_provider_identity(token)
