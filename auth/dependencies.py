"""
FastAPI dependencies for authentication.

``get_current_user`` is the bearer guard every protected route depends
on.  ``require_admin`` layers the admin role check on top of it.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import AuthErrorKind, message_for, pick_locale
from auth.models import Role, UserPublic
from auth.service import AuthService
from database.session import get_db_session
from database.store import SqlAlchemyStore

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


def get_auth_service(session: AsyncSession = Depends(db_session)) -> AuthService:
    """Build an ``AuthService`` bound to the request's DB session."""
    return AuthService(SqlAlchemyStore(session))


def get_locale(accept_language: Optional[str] = Header(None)) -> str:
    return pick_locale(accept_language)


def auth_error(kind: AuthErrorKind, status_code: int, locale: Optional[str] = None) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={"code": kind.value, "message": message_for(kind, locale)},
        headers=headers,
    )


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[str]:
    """Raw bearer token, or ``None`` when the header is absent or not ``Bearer``."""
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    locale: str = Depends(get_locale),
) -> UserPublic:
    """
    Resolve the bearer token to a user.

    Missing, malformed, expired and revoked tokens all produce the same
    401 so callers cannot tell which check failed.
    """
    if token is None:
        raise auth_error(AuthErrorKind.NO_TOKEN, status.HTTP_401_UNAUTHORIZED, locale)

    user = await service.resolve(token)
    if user is None:
        logger.debug("Rejected bearer token for %s %s", request.method, request.url.path)
        raise auth_error(AuthErrorKind.NO_TOKEN, status.HTTP_401_UNAUTHORIZED, locale)

    request.state.user = user
    return user


def is_admin(user: UserPublic) -> bool:
    return user.role == Role.ADMIN


async def require_admin(
    user: UserPublic = Depends(get_current_user),
    locale: str = Depends(get_locale),
) -> UserPublic:
    if not is_admin(user):
        raise auth_error(AuthErrorKind.FORBIDDEN, status.HTTP_403_FORBIDDEN, locale)
    return user
