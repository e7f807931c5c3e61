"""Unit tests for services/ -- SMTP mailer and local blob store."""

import logging
import smtplib

import pytest

from services.blobs import LocalBlobStore
from services.email import DeliveryError, Mailer, redact_email

# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "email,expected",
    [("alice@example.com", "al***@example.com"), ("a@x.io", "a***@x.io"), ("no-at-sign", "redacted")],
)
def test_redact_email(email, expected):
    assert redact_email(email) == expected


def test_unconfigured_mailer_logs_instead_of_sending(caplog):
    mailer = Mailer()
    assert not mailer.is_configured
    with caplog.at_level(logging.INFO, logger="waypoint.services.email"):
        mailer.send("alice@example.com", "Verify Your Email", "Verify your email: http://x/token")
    assert "al***@example.com" in caplog.text
    assert "alice@example.com" not in caplog.text


def test_smtp_failure_raises_delivery_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, b"try later")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    mailer = Mailer(smtp_host="smtp.invalid", from_email="noreply@example.com")
    with pytest.raises(DeliveryError):
        mailer.send("bob@example.com", "Reset Your Password", "Reset your password: http://x/token")


def test_from_address_defaults_to_smtp_user():
    mailer = Mailer(smtp_host="smtp.example.com", smtp_user="noreply@example.com")
    assert mailer.from_email == "noreply@example.com"
    assert mailer.is_configured


# ---------------------------------------------------------------------------
# Blobs
# ---------------------------------------------------------------------------


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", "http://localhost:8000/blobs/")


def test_store_and_release(blob_store, tmp_path):
    url = blob_store.store(b"\x89PNG....", "image/png", "avatars")
    assert url.startswith("http://localhost:8000/blobs/avatars/")
    assert url.endswith(".png")
    relative = url.removeprefix("http://localhost:8000/blobs/")
    assert (tmp_path / "blobs" / relative).read_bytes() == b"\x89PNG...."

    assert blob_store.release(url) is True
    assert not (tmp_path / "blobs" / relative).exists()
    assert blob_store.release(url) is False


def test_release_foreign_url(blob_store):
    assert blob_store.release("https://cdn.example.com/avatars/x.png") is False
    assert blob_store.release("") is False


def test_release_refuses_path_traversal(blob_store):
    with pytest.raises(ValueError):
        blob_store.release("http://localhost:8000/blobs/../../etc/passwd")


def test_admin_folder_is_separate(blob_store):
    assert "/admin-avatars/" in blob_store.store(b"img", "image/jpeg", "admin-avatars")
