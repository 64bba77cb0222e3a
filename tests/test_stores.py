"""
Tests for the store implementations and the expired-session reaper.

The SQL store runs against an in-memory SQLite database.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.errors import AuthErrorKind, AuthFailure
from auth.models import AuthResult, LoginData, RegisterData, Role
from auth.reaper import SessionReaper
from auth.service import AuthService
from auth.store import DuplicateUserError, InMemoryStore, StoreError
from database.models import Base
from database.session import get_db_session
from database.store import SqlAlchemyStore

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SqlAlchemyStore(session_factory=session_factory)


async def _make_user(store, username="alice", email="a@x.com"):
    return await store.create_user(
        username=username, email=email, password_hash="hash", settings={}
    )


class TestSqlAlchemyStore:
    @pytest.mark.asyncio
    async def test_create_and_lookup_user(self, sql_store):
        user = await _make_user(sql_store)
        assert user.id
        assert user.role == Role.USER
        assert user.is_active is True
        assert (await sql_store.get_user(user.id)).email == "a@x.com"
        assert (await sql_store.get_user_by_email("a@x.com")).id == user.id
        assert (await sql_store.get_user_by_username("alice")).id == user.id
        assert await sql_store.get_user_by_email("nobody@x.com") is None

    @pytest.mark.asyncio
    async def test_unique_email_enforced(self, sql_store):
        await _make_user(sql_store)
        with pytest.raises(DuplicateUserError) as exc_info:
            await _make_user(sql_store, username="other")
        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_unique_username_enforced(self, sql_store):
        await _make_user(sql_store)
        with pytest.raises(DuplicateUserError) as exc_info:
            await _make_user(sql_store, email="other@x.com")
        assert exc_info.value.field == "username"

    @pytest.mark.asyncio
    async def test_session_roundtrip_keeps_timezone(self, sql_store):
        user = await _make_user(sql_store)
        expires = NOW + timedelta(days=7)
        await sql_store.create_session(token="t1", user_id=user.id, expires_at=expires)

        session = await sql_store.get_session("t1")
        assert session.user_id == user.id
        assert session.expires_at == expires

        await sql_store.delete_session("t1")
        assert await sql_store.get_session("t1") is None
        await sql_store.delete_session("t1")

    @pytest.mark.asyncio
    async def test_update_user(self, sql_store):
        user = await _make_user(sql_store)
        updated = await sql_store.update_user(
            user.id, {"is_active": False, "role": "admin", "settings": {"darkMode": True}}
        )
        assert updated.is_active is False
        assert updated.role == Role.ADMIN
        assert updated.settings == {"darkMode": True}
        assert await sql_store.update_user("missing", {"is_active": False}) is None

    @pytest.mark.asyncio
    async def test_delete_expired_sessions(self, sql_store):
        user = await _make_user(sql_store)
        await sql_store.create_session(token="old", user_id=user.id, expires_at=NOW - timedelta(hours=1))
        await sql_store.create_session(token="new", user_id=user.id, expires_at=NOW + timedelta(hours=1))

        assert await sql_store.delete_expired_sessions(NOW) == 1
        assert await sql_store.get_session("old") is None
        assert await sql_store.get_session("new") is not None

    @pytest.mark.asyncio
    async def test_service_on_shared_session(self, session_factory, hasher):
        async with session_factory() as db:
            service = AuthService(SqlAlchemyStore(db), hasher=hasher)
            registered = await service.register(
                RegisterData(username="alice", email="a@x.com", password="secret123")
            )
            duplicate = await service.register(
                RegisterData(username="alice", email="b@x.com", password="secret123")
            )
            await db.commit()

        assert registered.user.username == "alice"
        assert duplicate.kind.value == "duplicate_username"

        async with session_factory() as db:
            service = AuthService(SqlAlchemyStore(db), hasher=hasher)
            logged_in = await service.login(LoginData(email="a@x.com", password="secret123"))
            assert (await service.resolve(registered.token)).id == registered.user.id
            assert (await service.resolve(logged_in.token)).id == registered.user.id

    @pytest.mark.asyncio
    async def test_update_username_clash(self, sql_store):
        await _make_user(sql_store)
        bob = await _make_user(sql_store, username="bob", email="b@x.com")
        with pytest.raises(DuplicateUserError) as exc_info:
            await sql_store.update_user(bob.id, {"username": "alice"})
        assert exc_info.value.field == "username"

    @pytest.mark.asyncio
    async def test_non_unique_constraint_is_store_error(self, sql_store):
        user = await _make_user(sql_store)
        with pytest.raises(StoreError) as exc_info:
            await sql_store.update_user(user.id, {"is_active": None})
        assert not isinstance(exc_info.value, DuplicateUserError)
        assert (await sql_store.get_user(user.id)).is_active is True

    @pytest.mark.asyncio
    async def test_non_unique_constraint_on_shared_session(self, session_factory):
        async with session_factory() as db:
            store = SqlAlchemyStore(db)
            user = await _make_user(store)
            await db.commit()
            with pytest.raises(StoreError):
                await store.update_user(user.id, {"username": None})
            assert (await store.get_user(user.id)).username == "alice"

    @pytest.mark.asyncio
    async def test_os_errors_become_store_errors(self):
        db = MagicMock()
        db.get = AsyncMock(side_effect=ConnectionRefusedError("refused"))
        db.execute = AsyncMock(side_effect=TimeoutError("timed out"))
        store = SqlAlchemyStore(db)

        with pytest.raises(StoreError):
            await store.get_user("x")
        with pytest.raises(StoreError):
            await store.get_user_by_email("a@x.com")

    @pytest.mark.asyncio
    async def test_commit_failure_becomes_store_error(self, monkeypatch):
        class _BrokenCommit:
            def __init__(self):
                self.commit = AsyncMock(side_effect=ConnectionResetError("reset"))
                self.rollback = AsyncMock()

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                return False

        monkeypatch.setattr("database.session.async_session_factory", _BrokenCommit)
        dependency = get_db_session()
        session = await dependency.__anext__()
        with pytest.raises(StoreError):
            await dependency.__anext__()
        session.rollback.assert_awaited_once()


class TestConcurrentRegistration:
    @pytest.mark.asyncio
    async def test_same_email_on_separate_sessions(self, tmp_path, hasher):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        second_checked = asyncio.Event()
        first_committed = asyncio.Event()

        async def first_attempt():
            async with factory() as db:
                store = SqlAlchemyStore(db)
                create_user = store.create_user

                async def create_after_second_checked(**kwargs):
                    # both registrations have passed the lookups by now
                    await second_checked.wait()
                    return await create_user(**kwargs)

                store.create_user = create_after_second_checked
                service = AuthService(store, hasher=hasher)
                try:
                    result = await service.register(
                        RegisterData(username="first", email="race@x.com", password="pw1234")
                    )
                    await db.commit()
                finally:
                    first_committed.set()
                return result

        async def second_attempt():
            async with factory() as db:
                store = SqlAlchemyStore(db)
                get_by_username = store.get_user_by_username
                create_user = store.create_user

                async def lookup_then_signal(username):
                    found = await get_by_username(username)
                    second_checked.set()
                    return found

                async def create_after_first_committed(**kwargs):
                    await first_committed.wait()
                    return await create_user(**kwargs)

                store.get_user_by_username = lookup_then_signal
                store.create_user = create_after_first_committed
                service = AuthService(store, hasher=hasher)
                result = await service.register(
                    RegisterData(username="second", email="race@x.com", password="pw1234")
                )
                await db.commit()
                return result

        try:
            outcomes = await asyncio.wait_for(
                asyncio.gather(first_attempt(), second_attempt()), timeout=30
            )
            async with factory() as db:
                users = await SqlAlchemyStore(db).list_users()
        finally:
            await engine.dispose()

        first, second = outcomes
        assert isinstance(first, AuthResult)
        assert second == AuthFailure(kind=AuthErrorKind.DUPLICATE_EMAIL)
        assert [u.username for u in users] == ["first"]


class TestSessionReaper:
    @pytest.mark.asyncio
    async def test_run_once_removes_only_expired(self):
        store = InMemoryStore()
        now = datetime.now(timezone.utc)
        await store.create_session(token="old", user_id="u", expires_at=now - timedelta(seconds=1))
        await store.create_session(token="new", user_id="u", expires_at=now + timedelta(days=1))

        reaper = SessionReaper(lambda: store, interval_seconds=60)
        assert await reaper.run_once() == 1
        assert set(store.sessions) == {"new"}

    @pytest.mark.asyncio
    async def test_disabled_reaper_never_starts(self):
        reaper = SessionReaper(InMemoryStore, interval_seconds=0)
        reaper.start()
        assert reaper._task is None
        await reaper.stop()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        reaper = SessionReaper(InMemoryStore, interval_seconds=3600)
        reaper.start()
        assert reaper._task is not None
        await reaper.stop()
        assert reaper._task is None


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_sessions_are_returned_as_copies(self):
        store = InMemoryStore()
        expires = NOW + timedelta(days=7)
        created = await store.create_session(token="t1", user_id="u", expires_at=expires)
        created.expires_at = NOW + timedelta(days=365)

        fetched = await store.get_session("t1")
        fetched.expires_at = NOW + timedelta(days=365)
        fetched.user_id = "someone-else"

        stored = await store.get_session("t1")
        assert stored.expires_at == expires
        assert stored.user_id == "u"
