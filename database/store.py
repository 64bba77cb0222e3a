"""
SQLAlchemy-backed ``SessionStore``.

Pass a request-scoped ``AsyncSession`` to share the caller's transaction
(committed by ``get_db_session``), or omit it to have each call open,
commit and close its own session (the reaper uses the latter).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.models import Role, SessionRecord, UserRecord
from auth.store import DuplicateUserError, StoreError
from database.models import AuthSession, User

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        is_active=row.is_active,
        settings=dict(row.settings or {}),
        role=Role(row.role),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _session_record(row: AuthSession) -> SessionRecord:
    return SessionRecord(
        token=row.token,
        user_id=row.user_id,
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
    )


class SqlAlchemyStore:
    def __init__(
        self,
        db_session: Optional[AsyncSession] = None,
        *,
        session_factory: Optional[async_sessionmaker] = None,
    ) -> None:
        if db_session is None and session_factory is None:
            from database.session import async_session_factory

            session_factory = async_session_factory
        self._db = db_session
        self._factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            if self._db is not None:
                yield self._db
                await self._db.flush()
                return
            async with self._factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Store operation failed: %s", exc)
            raise StoreError(str(exc)) from exc

    # ── Users ──────────────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self._session() as session:
            row = await session.get(User, user_id)
            return _user_record(row) if row is not None else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.email == email))
            row = result.scalar_one_or_none()
            return _user_record(row) if row is not None else None

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.username == username))
            row = result.scalar_one_or_none()
            return _user_record(row) if row is not None else None

    async def list_users(self) -> List[UserRecord]:
        async with self._session() as session:
            result = await session.execute(select(User).order_by(User.created_at))
            return [_user_record(row) for row in result.scalars().all()]

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        settings: Dict[str, Any],
        role: Role = Role.USER,
    ) -> UserRecord:
        try:
            async with self._session() as session:
                row = User(
                    username=username,
                    email=email,
                    password_hash=password_hash,
                    settings=dict(settings),
                    role=role.value,
                    is_active=True,
                )
                session.add(row)
                await session.flush()
                return _user_record(row)
        except IntegrityError as exc:
            raise await self._duplicate_from(exc, email=email, username=username)

    async def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserRecord]:
        try:
            async with self._session() as session:
                row = await session.get(User, user_id)
                if row is None:
                    return None
                for field, value in updates.items():
                    if field == "role":
                        value = Role(value).value
                    elif field == "settings":
                        value = dict(value)
                    setattr(row, field, value)
                row.updated_at = datetime.now(timezone.utc)
                await session.flush()
                return _user_record(row)
        except IntegrityError as exc:
            raise await self._duplicate_from(
                exc,
                email=updates.get("email"),
                username=updates.get("username"),
                user_id=user_id,
            )

    # ── Sessions ───────────────────────────────────────────────────────

    async def create_session(self, *, token: str, user_id: str, expires_at: datetime) -> SessionRecord:
        async with self._session() as session:
            row = AuthSession(token=token, user_id=user_id, expires_at=expires_at)
            session.add(row)
            await session.flush()
            return _session_record(row)

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        async with self._session() as session:
            row = await session.get(AuthSession, token)
            return _session_record(row) if row is not None else None

    async def delete_session(self, token: str) -> None:
        async with self._session() as session:
            await session.execute(delete(AuthSession).where(AuthSession.token == token))

    async def delete_expired_sessions(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(AuthSession).where(AuthSession.expires_at <= now)
            )
            return result.rowcount or 0

    # ── internals ──────────────────────────────────────────────────────

    async def _duplicate_from(
        self,
        exc: IntegrityError,
        *,
        email: Optional[str],
        username: Optional[str],
        user_id: Optional[str] = None,
    ) -> Exception:
        """
        Work out which unique column an ``IntegrityError`` came from.

        Returns ``DuplicateUserError`` for an email or username clash and
        ``StoreError`` for any other constraint failure.
        """
        if self._db is not None:
            await self._db.rollback()
        checks = (
            ("email", email, self.get_user_by_email),
            ("username", username, self.get_user_by_username),
        )
        for field, value, lookup in checks:
            if value is None:
                continue
            clash = await lookup(value)
            if clash is not None and clash.id != user_id:
                return DuplicateUserError(field)
        logger.error("Constraint violation on users: %s", exc.orig)
        return StoreError(str(exc.orig))
