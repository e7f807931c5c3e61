"""
auth/tokens.py -- Signed token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. TokenService is built once at startup from
       Settings and handed to everything that needs it (app.state.tokens,
       IdentityEngine). The signing secret never lives in module state, so
       tests can build a service with their own key.

  Token types: every token carries a "type" claim ("access", "refresh",
       "verify_email", "reset_password"). verify_* checks the type, so an
       access token can never be replayed as a refresh token or the other way
       round.

  Refresh tokens carry a random "jti". Two refresh tokens issued for the same
       account in the same second are still different strings, which is what
       single-slot replacement on the account row relies on: the stored value
       is compared by equality, and a newer login always overwrites it.

  Failures: any bad signature, expiry, malformed token, or wrong type raises
       TokenExpiredOrInvalid. Callers never see jose exceptions.

Layer rule: no imports from api/, accounts/, or services/. core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from jose import ExpiredSignatureError, JWTError, jwt

from core.errors import TokenExpiredOrInvalid

logger = logging.getLogger("waypoint.auth.tokens")

ACCESS = "access"
REFRESH = "refresh"
VERIFY_EMAIL = "verify_email"
RESET_PASSWORD = "reset_password"

_RESERVED_CLAIMS = frozenset({"sub", "role", "type", "exp", "iat", "jti"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Claims:
    """Verified token payload.

    subject is the "sub" claim: the account id as a string for access, refresh
    and reset tokens, the email address for verification tokens.
    """

    subject: str
    token_type: str
    expires_at: datetime
    role: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def account_id(self) -> int:
        try:
            return int(self.subject)
        except ValueError:
            raise TokenExpiredOrInvalid("Token subject is not an account id.") from None


class TokenService:
    """Issue and verify HS256-signed tokens.

    Usage:
        tokens = TokenService(settings.secret_key)
        access = tokens.issue_access(account.id, account.role, {"name": account.name})
        claims = tokens.verify_access(access)
    """

    def __init__(
        self,
        secret_key: str,
        refresh_secret_key: str | None = None,
        access_ttl_seconds: int = 3600,
        refresh_ttl_days: int = 7,
        verify_email_ttl_hours: int = 24,
        reset_ttl_seconds: int = 3600,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret_key = secret_key
        self._refresh_secret_key = refresh_secret_key or secret_key
        self._algorithm = algorithm
        self._clock = clock
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(days=refresh_ttl_days)
        self.verify_email_ttl = timedelta(hours=verify_email_ttl_hours)
        self.reset_ttl = timedelta(seconds=reset_ttl_seconds)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access(self, account_id: int, role: str, extra_claims: Mapping[str, Any] | None = None) -> str:
        """Sign {sub, role, type=access, **extra_claims} with a 1-hour expiry by default.

        Extra claims cannot shadow the reserved ones.
        """
        payload = {k: v for k, v in (extra_claims or {}).items() if k not in _RESERVED_CLAIMS}
        payload["role"] = role
        return self._encode(str(account_id), ACCESS, self.access_ttl, payload, self._secret_key)

    def issue_refresh(self, account_id: int) -> str:
        """Sign {sub, type=refresh, jti} with the long refresh expiry."""
        return self._encode(
            str(account_id), REFRESH, self.refresh_ttl, {"jti": secrets.token_hex(16)}, self._refresh_secret_key
        )

    def issue_email_token(self, email: str) -> str:
        """Sign a single-purpose email verification token for the given address."""
        return self._encode(email, VERIFY_EMAIL, self.verify_email_ttl, {"jti": secrets.token_hex(8)}, self._secret_key)

    def issue_reset_token(self, account_id: int) -> str:
        """Sign a single-purpose password reset token for the given account."""
        return self._encode(
            str(account_id), RESET_PASSWORD, self.reset_ttl, {"jti": secrets.token_hex(8)}, self._secret_key
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> Claims:
        return self._decode(token, ACCESS, self._secret_key)

    def verify_refresh(self, token: str) -> Claims:
        return self._decode(token, REFRESH, self._refresh_secret_key)

    def verify_reset_token(self, token: str) -> Claims:
        return self._decode(token, RESET_PASSWORD, self._secret_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _encode(self, subject: str, token_type: str, ttl: timedelta, claims: dict, key: str) -> str:
        now = self._clock()
        payload = dict(claims)
        payload.update({"sub": subject, "type": token_type, "iat": now, "exp": now + ttl})
        return jwt.encode(payload, key, algorithm=self._algorithm)

    def _decode(self, token: str, expected_type: str, key: str) -> Claims:
        if not token:
            raise TokenExpiredOrInvalid("Token missing.")
        try:
            payload = jwt.decode(token, key, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredOrInvalid("Token has expired.") from None
        except JWTError as exc:
            logger.debug("Rejected %s token: %s", expected_type, exc)
            raise TokenExpiredOrInvalid("Invalid token.") from None

        if payload.get("type") != expected_type or "sub" not in payload:
            raise TokenExpiredOrInvalid("Invalid token.")
        extra = {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}
        return Claims(
            subject=str(payload["sub"]),
            token_type=expected_type,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            role=payload.get("role"),
            extra=extra,
        )
