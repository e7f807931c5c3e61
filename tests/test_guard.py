"""
tests/test_guard.py -- Unit tests for auth/dependencies.py.

A throwaway FastAPI app mounts one route per dependency so the guard is
exercised through real header parsing and dependency injection, without the
full application's middleware.

Covers:
  - missing / malformed / non-bearer Authorization header -> 401
  - expired, wrongly signed, and refresh tokens presented as access -> 401
  - role mismatch -> 403
  - require_account: deleted account -> 404, suspended account -> 403
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from accounts.models import Account
from auth.dependencies import Identity, require_account, require_role
from auth.tokens import TokenService
from core.errors import IdentityError
from tests.fakes import TEST_SECRET


@pytest.fixture
def guarded(store):
    tokens = TokenService(TEST_SECRET)
    app = FastAPI()
    app.state.tokens = tokens
    app.state.account_store = store

    @app.exception_handler(IdentityError)
    async def _identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"code": exc.code})

    @app.get("/seller-only")
    def seller_only(identity: Identity = Depends(require_role("seller"))):
        return {"id": identity.account_id, "role": identity.role}

    @app.get("/seller-profile")
    def seller_profile(account: Account = Depends(require_account("seller"))):
        return {"email": account.email}

    return TestClient(app), tokens, store


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": ""}, {"Authorization": "Bearer"}, {"Authorization": "Basic dXNlcjpwdw=="}],
)
def test_missing_or_malformed_header_is_401(guarded, headers):
    client, _, _ = guarded
    resp = client.get("/seller-only", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_token"


def test_matching_role_is_admitted(guarded):
    client, tokens, _ = guarded
    resp = client.get("/seller-only", headers=_bearer(tokens.issue_access(7, "seller")))
    assert resp.status_code == 200
    assert resp.json() == {"id": 7, "role": "seller"}


def test_scheme_is_case_insensitive(guarded):
    client, tokens, _ = guarded
    resp = client.get("/seller-only", headers={"Authorization": f"bearer {tokens.issue_access(7, 'seller')}"})
    assert resp.status_code == 200


@pytest.mark.parametrize("role", ["user", "admin"])
def test_other_roles_are_forbidden(guarded, role):
    client, tokens, _ = guarded
    resp = client.get("/seller-only", headers=_bearer(tokens.issue_access(7, role)))
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


def test_expired_token_is_401(guarded):
    client, _, _ = guarded
    old = TokenService(TEST_SECRET, clock=lambda: datetime.now(timezone.utc) - timedelta(hours=2))
    resp = client.get("/seller-only", headers=_bearer(old.issue_access(7, "seller")))
    assert resp.status_code == 401


def test_foreign_signature_is_401(guarded):
    client, _, _ = guarded
    forged = TokenService("f" * 48).issue_access(7, "seller")
    assert client.get("/seller-only", headers=_bearer(forged)).status_code == 401


def test_refresh_token_is_not_accepted_as_access(guarded):
    client, tokens, _ = guarded
    assert client.get("/seller-only", headers=_bearer(tokens.issue_refresh(7))).status_code == 401


def test_require_account_loads_live_row(guarded):
    client, tokens, store = guarded
    account = store.insert({"email": "shop@example.com", "role": "seller", "status": "active"})
    resp = client.get("/seller-profile", headers=_bearer(tokens.issue_access(account.id, "seller")))
    assert resp.status_code == 200
    assert resp.json() == {"email": "shop@example.com"}


def test_require_account_deleted_row_is_404(guarded):
    client, tokens, store = guarded
    account = store.insert({"email": "gone@example.com", "role": "seller", "status": "active"})
    token = tokens.issue_access(account.id, "seller")
    store.delete(account.id)
    assert client.get("/seller-profile", headers=_bearer(token)).status_code == 404


def test_require_account_suspended_row_is_403(guarded):
    client, tokens, store = guarded
    account = store.insert({"email": "paused@example.com", "role": "seller", "status": "active"})
    token = tokens.issue_access(account.id, "seller")
    store.update(account.id, {"status": "suspended"})
    assert client.get("/seller-profile", headers=_bearer(token)).status_code == 403
