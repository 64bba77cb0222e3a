"""
Auth API routes — register, login, logout, current identity.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from auth.dependencies import (
    auth_error,
    get_auth_service,
    get_bearer_token,
    get_current_user,
    get_locale,
)
from auth.errors import AuthErrorKind, AuthFailure
from auth.models import AuthResult, LoginData, RegisterData, UserPublic
from auth.service import AuthOutcome, AuthService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_FAILURE_STATUS = {
    AuthErrorKind.DUPLICATE_EMAIL: status.HTTP_409_CONFLICT,
    AuthErrorKind.DUPLICATE_USERNAME: status.HTTP_409_CONFLICT,
    AuthErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.ACCOUNT_DISABLED: status.HTTP_403_FORBIDDEN,
    AuthErrorKind.NO_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    AuthErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def failure_to_http(failure: AuthFailure, locale: Optional[str] = None) -> HTTPException:
    return auth_error(failure.kind, _FAILURE_STATUS[failure.kind], locale)


def _unwrap(outcome: AuthOutcome, locale: str) -> AuthResult:
    if isinstance(outcome, AuthFailure):
        raise failure_to_http(outcome, locale)
    return outcome


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=AuthResult)
async def register(
    req: RegisterData,
    service: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> AuthResult:
    """Register a new user and open a session."""
    return _unwrap(await service.register(req), locale)


@router.post("/login", response_model=AuthResult)
async def login(
    req: LoginData,
    service: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> AuthResult:
    """Login with email + password."""
    return _unwrap(await service.login(req), locale)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Optional[str] = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Revoke the presented session.  Succeeds even when there is nothing to revoke."""
    if token:
        await service.logout(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserPublic)
async def me(user: UserPublic = Depends(get_current_user)) -> UserPublic:
    return user
