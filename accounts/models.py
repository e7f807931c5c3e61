"""
accounts/models.py -- Domain dataclasses and constants for accounts.

Pattern: Data class (pure data container, zero logic). The store maps rows
onto Account; the engine and routes do the work.

Layer rule: no imports from api/, auth/, or services/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_USER = "user"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"
ROLES: tuple[str, ...] = (ROLE_USER, ROLE_SELLER, ROLE_ADMIN)

# Roles allowed to create their own account through /auth/register.
# Admin accounts are provisioned by an operator (main.py) or another admin.
SELF_REGISTERING_ROLES: tuple[str, ...] = (ROLE_USER, ROLE_SELLER)

STATUS_PENDING = "pending_verification"
STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"
STATUSES: tuple[str, ...] = (STATUS_PENDING, STATUS_ACTIVE, STATUS_SUSPENDED)

# Legal status transitions. Nothing ever moves back to pending_verification.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_ACTIVE}),
    STATUS_ACTIVE: frozenset({STATUS_SUSPENDED}),
    STATUS_SUSPENDED: frozenset({STATUS_ACTIVE}),
}


@dataclass
class Account:
    """One login identity (a row in the users relation).

    password_hash is None for accounts created through the external identity
    provider that never set a local password. It is never serialized to a
    client -- api/models.py builds responses field by field.

    The three token slots are single-use or single-slot:
      email_verification_token -- set on registration, cleared on verification.
      reset_password_token     -- set on forgot-password, cleared on reset.
      refresh_token            -- the one currently valid refresh token.
    """

    email: str
    role: str = ROLE_USER
    status: str = STATUS_PENDING
    id: int | None = None
    password_hash: str | None = None
    name: str | None = None
    phone_number: str | None = None
    address: str | None = None
    avatar_url: str | None = None
    email_verification_token: str | None = None
    reset_password_token: str | None = None
    refresh_token: str | None = None
    google_id: str | None = None
    created_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE


@dataclass
class IssuedTokens:
    """Result of a successful login: the refresh token is already persisted on account."""

    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    account: Account


@dataclass
class AvatarUpload:
    data: bytes
    content_type: str


@dataclass
class Page:
    """One page of accounts plus the metadata a client needs to page further."""

    items: list[Account]
    page: int
    limit: int
    total_items: int
    total_pages: int = field(init=False)
    has_next_page: bool = field(init=False)
    has_prev_page: bool = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = -(-self.total_items // self.limit) if self.limit else 0
        self.has_next_page = self.page < self.total_pages
        self.has_prev_page = self.page > 1
