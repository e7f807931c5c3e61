"""
api/routes/v1/admin.py -- Account administration. Admin access tokens only.

  GET    /api/v1/admin/accounts               -- paginated list, filter by role/status
  GET    /api/v1/admin/accounts/{id}          -- one account
  POST   /api/v1/admin/accounts               -- provision an active account; 201
  PATCH  /api/v1/admin/accounts/{id}/status   -- suspend or reactivate
  DELETE /api/v1/admin/accounts/{id}          -- delete; never the caller's own account

Every route resolves the caller through require_account("admin"), so a
suspended admin loses access even before the access token expires.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from accounts.engine import MAX_PAGE_SIZE, IdentityEngine
from accounts.models import Account
from api.models import (
    AccountPageResponse,
    AccountResponse,
    MessageResponse,
    ProvisionRequest,
    RoleEnum,
    StatusEnum,
    StatusPatch,
)
from auth.dependencies import require_account
from core.errors import ValidationError

logger = logging.getLogger("waypoint.api.admin")

router = APIRouter(prefix="/admin/accounts")

_require_admin = require_account("admin")


@router.get("", response_model=AccountPageResponse)
def list_accounts(
    request: Request,
    role: Optional[RoleEnum] = None,
    status: Optional[StatusEnum] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    admin: Account = Depends(_require_admin),
) -> AccountPageResponse:
    """List accounts, newest id last, with pagination metadata."""
    engine: IdentityEngine = request.app.state.engine
    result = engine.list_accounts(
        role=role.value if role else None,
        status=status.value if status else None,
        page=page,
        limit=limit,
    )
    return AccountPageResponse.from_page(result)


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(request: Request, account_id: int, admin: Account = Depends(_require_admin)) -> AccountResponse:
    engine: IdentityEngine = request.app.state.engine
    return AccountResponse.from_account(engine.get_profile(account_id))


@router.post("", response_model=AccountResponse, status_code=201)
def provision_account(
    request: Request, body: ProvisionRequest, admin: Account = Depends(_require_admin)
) -> AccountResponse:
    engine: IdentityEngine = request.app.state.engine
    account = engine.provision_account(body.email, body.password, body.role.value, name=body.name)
    logger.info("Admin id=%s provisioned account id=%s", admin.id, account.id)
    return AccountResponse.from_account(account)


@router.patch("/{account_id}/status", response_model=AccountResponse)
def set_status(
    request: Request, account_id: int, body: StatusPatch, admin: Account = Depends(_require_admin)
) -> AccountResponse:
    engine: IdentityEngine = request.app.state.engine
    if account_id == admin.id:
        raise ValidationError("Admins cannot change their own status.")
    account = engine.set_status(account_id, body.status.value)
    logger.info("Admin id=%s set account id=%s status=%s", admin.id, account_id, account.status)
    return AccountResponse.from_account(account)


@router.delete("/{account_id}", response_model=MessageResponse)
def delete_account(request: Request, account_id: int, admin: Account = Depends(_require_admin)) -> MessageResponse:
    engine: IdentityEngine = request.app.state.engine
    engine.admin_delete_account(admin.id, account_id)
    logger.info("Admin id=%s deleted account id=%s", admin.id, account_id)
    return MessageResponse(message="Account deleted.")
