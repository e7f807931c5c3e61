"""
api/routes/v1/auth.py -- Authentication endpoints, one router per role.

build_auth_router(role) returns the router mounted at /api/v1/{role}/auth:

  POST /register              -- self-registration (user, seller only); 201
  GET  /verify-email/{token}  -- activate a pending account (user, seller only)
  POST /login                 -- password login; access + refresh token
  POST /forgot-password       -- store reset token, mail the link
  POST /reset-password/{token} -- set a new password with a reset token
  PUT  /change-password       -- bearer auth; old + new password
  POST /refresh-token         -- exchange refresh token for an access token
  POST /logout                -- bearer auth; clears the stored refresh token
  GET  /google                -- user only, when configured: redirect to Google
  GET  /google/callback       -- user only, when configured: finish Google login

Every role's surface is the same code with the role bound in. The role check
on login is what keeps a seller's credentials from opening the admin surface.

Security:
  Login and forgot-password are rate-limited per IP (LOGIN_LIMIT).
  Login failures all answer 401 invalid_credentials -- see accounts/engine.py.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from accounts.engine import IdentityEngine
from accounts.models import SELF_REGISTERING_ROLES, Account, IssuedTokens
from api.limiter import LOGIN_LIMIT, limiter
from api.models import (
    AccountResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
    ResetPasswordRequest,
)
from auth.dependencies import require_account
from auth.oauth import GOOGLE, get_provider_identity
from core.errors import InvalidCredentials, NotFound

logger = logging.getLogger("waypoint.api.auth")


def _named(name: str):
    """Give a handler a role-specific name before the router and limiter see it.

    Route names (for url_for) and slowapi's per-route limit keys are both
    derived from the function name, so each role's copy needs its own.
    """

    def decorate(func):
        func.__name__ = name
        func.__qualname__ = name
        return func

    return decorate


def _login_response(issued: IssuedTokens, response: Response) -> LoginResponse:
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
        account=AccountResponse.from_account(issued.account),
    )


def build_auth_router(role: str) -> APIRouter:
    """Return the authentication router for one role's surface."""
    router = APIRouter(prefix=f"/{role}/auth")
    label = role.capitalize()

    if role in SELF_REGISTERING_ROLES:

        @router.post("/register", response_model=MessageResponse, status_code=201)
        @_named(f"{role}_register")
        def register(request: Request, body: RegisterRequest) -> MessageResponse:
            """Create a pending account and send the verification email."""
            engine: IdentityEngine = request.app.state.engine
            engine.register(
                body.email,
                body.password,
                role=role,
                name=body.name,
                phone_number=body.phone_number,
                address=body.address,
            )
            return MessageResponse(message=f"{label} registered. Please verify your email.")

        @router.get("/verify-email/{token}", response_model=MessageResponse)
        @_named(f"{role}_verify_email")
        def verify_email(request: Request, token: str) -> MessageResponse:
            engine: IdentityEngine = request.app.state.engine
            engine.verify_email(token, role=role)
            return MessageResponse(message="Email verified successfully.")

    @limiter.limit(LOGIN_LIMIT)
    @router.post("/login", response_model=LoginResponse)
    @_named(f"{role}_login")
    def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
        """Authenticate with email and password; return access and refresh tokens."""
        engine: IdentityEngine = request.app.state.engine
        issued = engine.login(body.email, body.password, role)
        return _login_response(issued, response)

    @limiter.limit(LOGIN_LIMIT)
    @router.post("/forgot-password", response_model=MessageResponse)
    @_named(f"{role}_forgot_password")
    def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
        engine: IdentityEngine = request.app.state.engine
        engine.forgot_password(body.email, role)
        return MessageResponse(message="Password reset email sent.")

    @router.post("/reset-password/{token}", response_model=MessageResponse)
    @_named(f"{role}_reset_password")
    def reset_password(request: Request, token: str, body: ResetPasswordRequest) -> MessageResponse:
        engine: IdentityEngine = request.app.state.engine
        engine.reset_password(token, body.password, role=role)
        return MessageResponse(message="Password reset successful.")

    @router.put("/change-password", response_model=MessageResponse)
    @_named(f"{role}_change_password")
    def change_password(
        request: Request,
        body: ChangePasswordRequest,
        account: Account = Depends(require_account(role)),
    ) -> MessageResponse:
        engine: IdentityEngine = request.app.state.engine
        engine.change_password(account.id, body.old_password, body.new_password)
        return MessageResponse(message="Password changed successfully.")

    @router.post("/refresh-token", response_model=RefreshTokenResponse)
    @_named(f"{role}_refresh_token")
    def refresh_token(request: Request, response: Response, body: RefreshTokenRequest) -> RefreshTokenResponse:
        """Exchange the stored refresh token for a new access token."""
        engine: IdentityEngine = request.app.state.engine
        access_token = engine.refresh_access_token(body.refresh_token, role=role)
        response.headers["Cache-Control"] = "no-store"
        return RefreshTokenResponse(
            access_token=access_token,
            expires_in=int(engine.tokens.access_ttl.total_seconds()),
        )

    @router.post("/logout", response_model=MessageResponse)
    @_named(f"{role}_logout")
    def logout(request: Request, account: Account = Depends(require_account(role))) -> MessageResponse:
        engine: IdentityEngine = request.app.state.engine
        engine.logout(account.id)
        return MessageResponse(message="Logged out.")

    if role == "user":
        _add_google_routes(router)

    return router


def _add_google_routes(router: APIRouter) -> None:
    """Delegated login through Google. Both routes 404 when the provider is not configured."""

    @router.get("/google")
    async def google_login(request: Request):
        oauth = request.app.state.oauth
        if oauth is None:
            raise NotFound("Google sign-in is not enabled.")
        client = oauth.create_client(GOOGLE)
        redirect_uri = str(request.url_for("google_callback"))
        return await client.authorize_redirect(request, redirect_uri)

    @router.get("/google/callback", response_model=LoginResponse)
    async def google_callback(request: Request, response: Response) -> LoginResponse:
        """Finish the code exchange and log in (or create) the matching user account."""
        oauth = request.app.state.oauth
        if oauth is None:
            raise NotFound("Google sign-in is not enabled.")
        client = oauth.create_client(GOOGLE)
        try:
            token = await client.authorize_access_token(request)
            identity = get_provider_identity(token)
        except OAuthError:
            logger.exception("Google token exchange failed")
            raise InvalidCredentials("Google login failed.") from None
        except ValueError as exc:
            logger.warning("Google login rejected: %s", exc)
            raise InvalidCredentials("Google login failed.") from None

        engine: IdentityEngine = request.app.state.engine
        issued = await run_in_threadpool(engine.login_with_provider, identity.email, identity.subject, identity.name)
        return _login_response(issued, response)
