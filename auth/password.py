"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic
salting and configurable work factor.
"""

from __future__ import annotations

import secrets
from typing import Optional

import bcrypt

from config.settings import config

# bcrypt only looks at the first 72 bytes and current releases refuse longer input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """bcrypt hasher with a fixed cost factor (default ``config.password_hash_rounds``)."""

    def __init__(self, rounds: Optional[int] = None) -> None:
        self.rounds = rounds if rounds is not None else config.password_hash_rounds
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        """Hash a password (at most ``MAX_PASSWORD_BYTES`` UTF-8 bytes) with a fresh random salt."""
        return bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=self.rounds)
        ).decode()

    def verify(self, password: str, password_hash: str) -> bool:
        """Constant-time comparison against a bcrypt hash."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, password: str) -> bool:
        """
        Spend one full ``verify`` on a throwaway hash and return ``False``.

        Used when no account matches, so that path costs the same as a
        wrong password.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_hex(16))
        self.verify(password, self._dummy_hash)
        return False
