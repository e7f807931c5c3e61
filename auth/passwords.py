"""
auth/passwords.py -- Credential codec: bcrypt hashing and verification.

bcrypt is used directly (no passlib wrapper). The salt is random per hash
and the cost factor is fixed per process: configure() sets it once at
startup from Settings.bcrypt_rounds, and it can never drop below 10 rounds.

verify_password() never raises. A malformed, empty, or missing hash is simply
a non-match, so callers treat "bad stored hash" exactly like "wrong password".

Timing equalization: a dummy hash at the configured cost is kept alongside
the cost factor. Login runs equalize_timing() when no account exists, so
response time does not reveal whether an email is registered.

Layer rule: no imports from api/, accounts/, or services/.
"""

from __future__ import annotations

import bcrypt

MIN_ROUNDS = 10
DEFAULT_ROUNDS = 12

_rounds = DEFAULT_ROUNDS


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters; longer multi-byte inputs are truncated here explicitly
    because bcrypt 4.x raises on anything over 72 bytes.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def equalize_timing(plain: str) -> None:
    """Burn one bcrypt verification at the configured cost. Always a non-match."""
    verify_password(plain, _dummy_hash)


def configure(rounds: int) -> None:
    """Set the bcrypt cost factor used by hash_password(). Called once at startup."""
    global _rounds, _dummy_hash
    if rounds < MIN_ROUNDS:
        raise ValueError(f"bcrypt rounds must be at least {MIN_ROUNDS}, got {rounds}")
    _rounds = rounds
    _dummy_hash = hash_password("waypoint_timing_dummy")


_dummy_hash: str = hash_password("waypoint_timing_dummy")
