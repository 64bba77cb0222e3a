"""
Storage contract for users and sessions, plus an in-memory implementation.

``AuthService`` only talks to a ``SessionStore``.  The SQL implementation
lives in ``database.store``; ``InMemoryStore`` backs the tests and local
experiments.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from auth.models import Role, SessionRecord, UserRecord


class StoreError(Exception):
    """The backing store failed (unreachable, timed out, ...)."""


class DuplicateUserError(Exception):
    """A uniqueness constraint on ``users`` rejected a write."""

    def __init__(self, field: str) -> None:
        super().__init__(f"duplicate {field}")
        self.field = field


class SessionStore(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]: ...

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]: ...

    async def list_users(self) -> List[UserRecord]: ...

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        settings: Dict[str, Any],
        role: Role = Role.USER,
    ) -> UserRecord:
        """Persist a user.  Raises ``DuplicateUserError`` on an email/username clash."""
        ...

    async def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserRecord]: ...

    async def create_session(self, *, token: str, user_id: str, expires_at: datetime) -> SessionRecord: ...

    async def get_session(self, token: str) -> Optional[SessionRecord]: ...

    async def delete_session(self, token: str) -> None: ...

    async def delete_expired_sessions(self, now: datetime) -> int: ...


class InMemoryStore:
    """
    Dict-backed store.

    Every method yields to the event loop once before touching state so
    that concurrent callers interleave the way they would against a real
    database.  Check-and-insert in ``create_user`` runs without awaiting,
    which makes it the authoritative uniqueness guard.
    """

    def __init__(self) -> None:
        self.users: Dict[str, UserRecord] = {}
        self.sessions: Dict[str, SessionRecord] = {}

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        await asyncio.sleep(0)
        return self._copy(self.users.get(user_id))

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        await asyncio.sleep(0)
        return self._copy(self._find("email", email))

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        await asyncio.sleep(0)
        return self._copy(self._find("username", username))

    async def list_users(self) -> List[UserRecord]:
        await asyncio.sleep(0)
        return sorted(
            (u.model_copy(deep=True) for u in self.users.values()),
            key=lambda u: u.created_at,
        )

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        settings: Dict[str, Any],
        role: Role = Role.USER,
    ) -> UserRecord:
        await asyncio.sleep(0)
        if self._find("email", email) is not None:
            raise DuplicateUserError("email")
        if self._find("username", username) is not None:
            raise DuplicateUserError("username")
        now = datetime.now(timezone.utc)
        user = UserRecord(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=password_hash,
            settings=dict(settings),
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return user.model_copy(deep=True)

    async def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserRecord]:
        await asyncio.sleep(0)
        user = self.users.get(user_id)
        if user is None:
            return None
        for field in ("email", "username"):
            if field in updates:
                clash = self._find(field, updates[field])
                if clash is not None and clash.id != user_id:
                    raise DuplicateUserError(field)
        updated = user.model_copy(
            update={**updates, "updated_at": datetime.now(timezone.utc)}, deep=True
        )
        self.users[user_id] = updated
        return updated.model_copy(deep=True)

    async def create_session(self, *, token: str, user_id: str, expires_at: datetime) -> SessionRecord:
        await asyncio.sleep(0)
        record = SessionRecord(
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            created_at=datetime.now(timezone.utc),
        )
        self.sessions[token] = record
        return record.model_copy()

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        await asyncio.sleep(0)
        session = self.sessions.get(token)
        return session.model_copy() if session is not None else None

    async def delete_session(self, token: str) -> None:
        await asyncio.sleep(0)
        self.sessions.pop(token, None)

    async def delete_expired_sessions(self, now: datetime) -> int:
        await asyncio.sleep(0)
        expired = [t for t, s in self.sessions.items() if s.is_expired(now)]
        for token in expired:
            del self.sessions[token]
        return len(expired)

    # ── internals ──────────────────────────────────────────────────────

    def _find(self, field: str, value: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if getattr(user, field) == value:
                return user
        return None

    @staticmethod
    def _copy(user: Optional[UserRecord]) -> Optional[UserRecord]:
        return user.model_copy(deep=True) if user is not None else None
