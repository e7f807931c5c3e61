"""
API request and response models for Waypoint Identity REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in accounts/models.py, which own
the internal domain representation. Route handlers map between the two.

JSON field names are camelCase (accessToken, phoneNumber). Python attribute
names stay snake_case; the alias generator bridges the two, and
populate_by_name lets tests build models either way.

An account is never serialized wholesale: AccountResponse lists the profile
fields a client may see. Password hash and token slots are not among them.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from accounts.models import Account, Page

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    seller = "seller"
    admin = "admin"


class StatusEnum(str, Enum):
    pending_verification = "pending_verification"
    active = "active"
    suspended = "suspended"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Body for POST /{role}/auth/register."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=1000)


class LoginRequest(_CamelModel):
    # Deliberately no pattern on email: a malformed address must fail like a
    # wrong password (401), not with a 422 that confirms the input shape.
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class ForgotPasswordRequest(_CamelModel):
    email: str = Field(min_length=3, max_length=255)


class ResetPasswordRequest(_CamelModel):
    password: str = Field(max_length=128)


class ChangePasswordRequest(_CamelModel):
    old_password: str = Field(max_length=128)
    new_password: str = Field(max_length=128)


class RefreshTokenRequest(_CamelModel):
    refresh_token: str = Field(min_length=1)


class ProvisionRequest(_CamelModel):
    """Body for POST /admin/accounts -- creates an already-active account."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(max_length=128)
    role: RoleEnum
    name: Optional[str] = Field(default=None, max_length=255)


class StatusPatch(_CamelModel):
    status: StatusEnum


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(_CamelModel):
    """Client-visible profile of an account."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    email: str
    name: Optional[str] = None
    role: str
    status: str
    avatar_url: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=account.role,
            status=account.status,
            avatar_url=account.avatar_url,
            phone_number=account.phone_number,
            address=account.address,
        )


class MessageResponse(_CamelModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ProfileUpdateResponse(_CamelModel):
    message: str
    account: AccountResponse


class LoginResponse(_CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountResponse


class RefreshTokenResponse(_CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccountPageResponse(_CamelModel):
    """One page of accounts plus pagination metadata (GET /admin/accounts)."""

    items: list[AccountResponse]
    current_page: int
    items_per_page: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def from_page(cls, page: Page) -> "AccountPageResponse":
        return cls(
            items=[AccountResponse.from_account(a) for a in page.items],
            current_page=page.page,
            items_per_page=page.limit,
            total_items=page.total_items,
            total_pages=page.total_pages,
            has_next_page=page.has_next_page,
            has_prev_page=page.has_prev_page,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
