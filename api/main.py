"""
api/main.py -- FastAPI application entry point for Waypoint Identity.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- OAuth state between redirect and callback

Lifespan builds the account store, token service, mailer, blob store and
identity engine from Settings, and tears them down in reverse on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from accounts.engine import IdentityEngine
from accounts.models import ROLES
from accounts.store import AccountStore
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import build_auth_router
from api.routes.v1.profile import build_profile_router
from auth import passwords
from auth.oauth import build_oauth
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import IdentityError
from services.blobs import LocalBlobStore
from services.email import Mailer

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("waypoint.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the identity services on startup and release them on shutdown.

    Startup order follows the dependency chain: store and token service
    first, then the collaborators the engine is handed.
    """
    logger.info("Waypoint Identity API starting up")
    passwords.configure(settings.bcrypt_rounds)

    store = AccountStore(db_url=settings.database_url)
    tokens = TokenService(
        secret_key=settings.secret_key,
        refresh_secret_key=settings.refresh_secret_key or None,
        access_ttl_seconds=settings.access_token_expire_seconds,
        refresh_ttl_days=settings.refresh_token_expire_days,
    )
    mailer = Mailer(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        smtp_use_tls=settings.smtp_use_tls,
        from_email=settings.email_from,
    )
    if not mailer.is_configured:
        logger.warning("SMTP not configured -- verification and reset emails are logged only")
    blobs = LocalBlobStore(settings.blob_storage_dir, settings.blob_public_base_url)

    app.state.account_store = store
    app.state.tokens = tokens
    app.state.engine = IdentityEngine(
        store,
        tokens,
        mailer,
        blobs,
        base_url=settings.base_url,
        avatar_max_bytes=settings.avatar_max_bytes,
    )
    app.state.oauth = build_oauth(settings)
    logger.info("Identity engine initialized (google_login=%s)", app.state.oauth is not None)

    yield

    app.state.engine.close()
    store.close()
    logger.info("Waypoint Identity API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Waypoint Identity API",
    description="Accounts, credentials and sessions for users, sellers and admins.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# authlib keeps the OAuth state value in the session between the redirect to
# the provider and the callback.
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)

# SlowAPIMiddleware looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

for _role in ROLES:
    app.include_router(build_auth_router(_role), prefix="/api/v1", tags=[f"{_role.capitalize()} Auth"])
    app.include_router(build_profile_router(_role), prefix="/api/v1", tags=[f"{_role.capitalize()} Profile"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])

# Avatar blobs written by LocalBlobStore are served from the same origin.
app.mount("/blobs", StaticFiles(directory=settings.blob_storage_dir, check_dir=False), name="blobs")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """Map an engine or guard failure to its status code and error code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    store: AccountStore = request.app.state.account_store
    database = "ok" if store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
