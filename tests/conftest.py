"""
Shared fixtures: in-memory store, a cheap bcrypt hasher and a controllable clock.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from auth.password import PasswordHasher
from auth.service import AuthService
from auth.store import InMemoryStore
from auth.tokens import SessionTokenGenerator


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast; cost 12 is checked separately.
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(store, hasher, clock):
    return AuthService(
        store,
        hasher=hasher,
        tokens=SessionTokenGenerator(),
        session_duration=timedelta(days=7),
        clock=clock,
    )
