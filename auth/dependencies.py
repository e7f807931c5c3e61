"""
auth/dependencies.py -- FastAPI Depends() helpers for request authorization.

The only accepted credential is an access token in the Authorization header:

    Authorization: Bearer <token>

get_identity() verifies signature, expiry and token type through the
TokenService on app.state and returns an Identity (account id + role). It
raises InvalidToken, which api/main.py renders as 401.

require_role(expected) wraps get_identity() and fails closed with Forbidden
(403) when the token's role differs from the one the endpoint serves.

require_account(expected) additionally loads the live account row for
operations that need current profile data. It answers NotFound if the row is
gone and Forbidden if the account is no longer active, so a suspended
account's still-unexpired access token stops working at once on these routes.

Layer rule: no imports from api/ or services/. From accounts/ only the
plain dataclasses are imported; the store is reached through request.app.state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from accounts.models import Account
from auth.tokens import Claims, TokenService
from core.errors import Forbidden, InvalidToken, NotFound


@dataclass(frozen=True)
class Identity:
    """The verified caller of a request."""

    account_id: int
    role: str
    claims: Claims


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity(request: Request) -> Identity:
    """Require a valid access token. Raises InvalidToken (401) otherwise."""
    token = _bearer_token(request)
    if token is None:
        raise InvalidToken("Authorization header missing or malformed.")
    tokens: TokenService = request.app.state.tokens
    claims = tokens.verify_access(token)
    if not claims.role:
        raise InvalidToken()
    return Identity(account_id=claims.account_id, role=claims.role, claims=claims)


def require_role(expected: str) -> Callable[[Request], Identity]:
    """Build a dependency that only admits access tokens carrying the expected role.

    Use as a FastAPI dependency:
        @router.get("/seller/dashboard")
        def route(identity: Identity = Depends(require_role("seller"))): ...
    """

    def dependency(request: Request) -> Identity:
        identity = get_identity(request)
        if identity.role != expected:
            raise Forbidden(f"Access denied. {expected.capitalize()} privileges required.")
        return identity

    dependency.__name__ = f"require_{expected}"
    return dependency


def require_account(expected: str) -> Callable[[Request], Account]:
    """Like require_role(), but resolves to the live Account row."""

    def dependency(request: Request) -> Account:
        identity = require_role(expected)(request)
        account = request.app.state.account_store.find_by_id(identity.account_id)
        if account is None:
            raise NotFound()
        if account.role != expected:
            raise Forbidden()
        if not account.is_active:
            raise Forbidden("Account is not active.")
        return account

    dependency.__name__ = f"require_{expected}_account"
    return dependency
