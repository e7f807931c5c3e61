"""
api/routes/v1/profile.py -- Self-service profile endpoints, one router per role.

  GET    /api/v1/{role}/profile  -- current profile (live row)
  PUT    /api/v1/{role}/profile  -- multipart: name, phoneNumber, address, avatar
  DELETE /api/v1/{role}/profile  -- delete own account; avatar released in background

The avatar part is read with a cap of one byte past the configured limit, so
an oversized upload is rejected by the engine without buffering all of it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from accounts.engine import IdentityEngine
from accounts.models import Account, AvatarUpload
from api.models import AccountResponse, MessageResponse, ProfileUpdateResponse
from auth.dependencies import require_account

logger = logging.getLogger("waypoint.api.profile")


def _read_avatar(upload: UploadFile, max_bytes: int) -> AvatarUpload:
    data = upload.file.read(max_bytes + 1)
    return AvatarUpload(data=data, content_type=upload.content_type or "")


def build_profile_router(role: str) -> APIRouter:
    router = APIRouter(prefix=f"/{role}/profile")

    def get_profile(account: Account = Depends(require_account(role))) -> AccountResponse:
        return AccountResponse.from_account(account)

    def update_profile(
        request: Request,
        account: Account = Depends(require_account(role)),
        name: Optional[str] = Form(default=None, max_length=255),
        phone_number: Optional[str] = Form(default=None, alias="phoneNumber", max_length=50),
        address: Optional[str] = Form(default=None, max_length=1000),
        avatar: Optional[UploadFile] = File(default=None),
    ) -> ProfileUpdateResponse:
        """Update the supplied profile fields. Empty fields are left unchanged."""
        engine: IdentityEngine = request.app.state.engine
        upload = None
        if avatar is not None and avatar.filename:
            upload = _read_avatar(avatar, engine.avatar_max_bytes)
        updated = engine.update_profile(
            account.id,
            name=name,
            phone_number=phone_number,
            address=address,
            avatar=upload,
        )
        return ProfileUpdateResponse(message="Profile updated.", account=AccountResponse.from_account(updated))

    def delete_profile(request: Request, account: Account = Depends(require_account(role))) -> MessageResponse:
        engine: IdentityEngine = request.app.state.engine
        engine.delete_account(account.id)
        return MessageResponse(message="Account deleted.")

    router.add_api_route(
        "", get_profile, methods=["GET"], response_model=AccountResponse, name=f"{role}_get_profile"
    )
    router.add_api_route(
        "", update_profile, methods=["PUT"], response_model=ProfileUpdateResponse, name=f"{role}_update_profile"
    )
    router.add_api_route(
        "", delete_profile, methods=["DELETE"], response_model=MessageResponse, name=f"{role}_delete_profile"
    )
    return router
