"""Unit tests for core/config.py -- Settings validation rules."""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "s" * 32


def test_debug_mode_generates_secret_key():
    settings = Settings(debug=True, secret_key="", _env_file=None)
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="", _env_file=None)


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="short", _env_file=None)


def test_short_refresh_key_rejected():
    with pytest.raises(ValidationError, match="REFRESH_SECRET_KEY"):
        Settings(secret_key=GOOD_KEY, refresh_secret_key="short", _env_file=None)


def test_low_bcrypt_cost_rejected():
    with pytest.raises(ValidationError, match="BCRYPT_ROUNDS"):
        Settings(secret_key=GOOD_KEY, bcrypt_rounds=8, _env_file=None)


def test_token_lifetime_defaults():
    settings = Settings(secret_key=GOOD_KEY, _env_file=None)
    assert settings.access_token_expire_seconds == 3600
    assert settings.refresh_token_expire_days == 7
    assert settings.avatar_max_bytes == 5 * 1024 * 1024


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_SECONDS", "900")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    settings = Settings(_env_file=None)
    assert settings.access_token_expire_seconds == 900
    assert settings.smtp_host == "smtp.example.com"
