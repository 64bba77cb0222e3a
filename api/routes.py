"""
REST API routes for account management.

Profile settings for the signed-in user, and admin-only user listing /
editing.  Passwords are never accepted or returned here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status

from auth.dependencies import (
    auth_error,
    get_auth_service,
    get_current_user,
    get_locale,
    require_admin,
)
from auth.errors import AuthErrorKind, AuthFailure
from auth.models import AdminUserUpdate, UserPublic
from auth.routes import failure_to_http
from auth.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.patch("/users/me/settings", response_model=UserPublic)
async def update_my_settings(
    settings: Dict[str, Any] = Body(...),
    user: UserPublic = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> UserPublic:
    """Merge the given keys into the caller's settings (model, autoSave, darkMode, ...)."""
    updated = await service.update_settings(user.id, settings)
    if updated is None:
        raise auth_error(AuthErrorKind.NO_TOKEN, status.HTTP_401_UNAUTHORIZED, locale)
    return updated


# ── Admin ──────────────────────────────────────────────────────────────


@router.get("/admin/users", response_model=List[UserPublic])
async def list_users(
    admin: UserPublic = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> List[UserPublic]:
    return await service.list_users()


@router.patch("/admin/users/{user_id}", response_model=UserPublic)
async def update_user(
    user_id: str,
    req: AdminUserUpdate,
    admin: UserPublic = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> UserPublic:
    result = await service.update_user(
        user_id, req.model_dump(exclude_unset=True, exclude_none=True)
    )
    if isinstance(result, AuthFailure):
        raise failure_to_http(result, locale)
    logger.info("Admin %s updated user %s", admin.id, user_id)
    return result
