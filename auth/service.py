"""
AuthService: registration, login, logout and token resolution.

All collaborators are passed in at construction; nothing here reaches for
module-level storage.  Expected failures come back as ``AuthFailure``
values, infrastructure failures propagate as ``StoreError``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from auth.errors import AuthErrorKind, AuthFailure
from auth.models import AuthResult, LoginData, RegisterData, UserPublic, UserRecord
from auth.password import PasswordHasher
from auth.store import DuplicateUserError, SessionStore
from auth.tokens import SessionTokenGenerator
from config.settings import config

logger = logging.getLogger(__name__)

AuthOutcome = Union[AuthResult, AuthFailure]

# Columns an admin update may touch; never includes ``password_hash``.
_ADMIN_UPDATABLE = frozenset({"username", "email", "role", "is_active", "settings"})

_DUPLICATE_KINDS = {
    "email": AuthErrorKind.DUPLICATE_EMAIL,
    "username": AuthErrorKind.DUPLICATE_USERNAME,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    def __init__(
        self,
        store: SessionStore,
        *,
        hasher: Optional[PasswordHasher] = None,
        tokens: Optional[SessionTokenGenerator] = None,
        session_duration: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher or PasswordHasher()
        self.tokens = tokens or SessionTokenGenerator()
        self.session_duration = session_duration or timedelta(
            seconds=config.session_duration_seconds
        )
        self.clock = clock

    # ── Credential flows ───────────────────────────────────────────────

    async def register(self, data: RegisterData) -> AuthOutcome:
        """
        Create an account and an initial session.

        1. Reject a taken email, then a taken username.
        2. Hash the password and create the user.
        3. Issue a session valid for ``session_duration``.

        The lookups are a fast path only; the store's uniqueness guard
        decides races between concurrent registrations.
        """
        if await self.store.get_user_by_email(data.email) is not None:
            return AuthFailure(kind=AuthErrorKind.DUPLICATE_EMAIL)
        if await self.store.get_user_by_username(data.username) is not None:
            return AuthFailure(kind=AuthErrorKind.DUPLICATE_USERNAME)

        password_hash = await asyncio.to_thread(self.hasher.hash, data.password)
        try:
            user = await self.store.create_user(
                username=data.username,
                email=data.email,
                password_hash=password_hash,
                settings={},
            )
        except DuplicateUserError as exc:
            logger.info("Registration lost uniqueness race on %s", exc.field)
            return AuthFailure(kind=_DUPLICATE_KINDS[exc.field])

        token = await self._issue_session(user)
        logger.info("Registered user %s (%s)", user.username, user.id)
        return AuthResult(user=UserPublic.from_record(user), token=token)

    async def login(self, data: LoginData) -> AuthOutcome:
        user = await self.store.get_user_by_email(data.email)
        if user is None:
            await asyncio.to_thread(self.hasher.verify_dummy, data.password)
            logger.info("Login rejected: unknown email")
            return AuthFailure(kind=AuthErrorKind.INVALID_CREDENTIALS)

        if not user.is_active:
            logger.info("Login rejected: account %s disabled", user.id)
            return AuthFailure(kind=AuthErrorKind.ACCOUNT_DISABLED)

        valid = await asyncio.to_thread(self.hasher.verify, data.password, user.password_hash)
        if not valid:
            logger.info("Login rejected: bad password for %s", user.id)
            return AuthFailure(kind=AuthErrorKind.INVALID_CREDENTIALS)

        token = await self._issue_session(user)
        logger.info("Login: %s (%s)", user.username, user.id)
        return AuthResult(user=UserPublic.from_record(user), token=token)

    async def logout(self, token: str) -> None:
        """Revoke a session.  Unknown tokens are ignored."""
        await self.store.delete_session(token)
        logger.debug("Session revoked")

    async def resolve(self, token: str) -> Optional[UserPublic]:
        """
        Map a bearer token to its user, or ``None``.

        ``None`` covers every rejection: unknown token, expired session,
        missing or disabled owner.  Expiry is fixed at issuance and is not
        extended here.
        """
        if not token:
            return None
        session = await self.store.get_session(token)
        if session is None or session.is_expired(self.clock()):
            return None
        user = await self.store.get_user(session.user_id)
        if user is None or not user.is_active:
            return None
        return UserPublic.from_record(user)

    # ── Account management ─────────────────────────────────────────────

    async def update_settings(self, user_id: str, settings: Dict[str, Any]) -> Optional[UserPublic]:
        """Merge ``settings`` into the user's settings map."""
        user = await self.store.get_user(user_id)
        if user is None:
            return None
        updated = await self.store.update_user(
            user_id, {"settings": {**user.settings, **settings}}
        )
        return UserPublic.from_record(updated) if updated is not None else None

    async def list_users(self) -> List[UserPublic]:
        return [UserPublic.from_record(u) for u in await self.store.list_users()]

    async def update_user(
        self, user_id: str, updates: Dict[str, Any]
    ) -> Union[UserPublic, AuthFailure]:
        """Admin update.  Keys outside the allowed set, and ``None`` values, are dropped."""
        allowed = {
            k: v for k, v in updates.items() if k in _ADMIN_UPDATABLE and v is not None
        }
        try:
            updated = await self.store.update_user(user_id, allowed)
        except DuplicateUserError as exc:
            return AuthFailure(kind=_DUPLICATE_KINDS[exc.field])
        if updated is None:
            return AuthFailure(kind=AuthErrorKind.NOT_FOUND)
        logger.info("Updated user %s: %s", user_id, sorted(allowed))
        return UserPublic.from_record(updated)

    # ── internals ──────────────────────────────────────────────────────

    async def _issue_session(self, user: UserRecord) -> str:
        token = self.tokens.generate()
        await self.store.create_session(
            token=token,
            user_id=user.id,
            expires_at=self.clock() + self.session_duration,
        )
        return token
