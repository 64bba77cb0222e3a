"""
Tests for the bcrypt hasher and the session token generator.
"""

import re

import pytest

from auth.password import PasswordHasher
from auth.tokens import SessionTokenGenerator


class TestPasswordHasher:
    def test_same_password_hashes_differently(self, hasher):
        first = hasher.hash("secret123")
        second = hasher.hash("secret123")
        assert first != second
        assert hasher.verify("secret123", first)
        assert hasher.verify("secret123", second)

    def test_wrong_password_rejected(self, hasher):
        assert hasher.verify("wrong", hasher.hash("correct")) is False

    def test_hash_is_not_plaintext(self, hasher):
        stored = hasher.hash("secret123")
        assert "secret123" not in stored
        assert stored.startswith("$2")

    @pytest.mark.parametrize("bad_hash", ["", "not-a-hash", "$2b$12$short"])
    def test_malformed_hash_returns_false(self, hasher, bad_hash):
        assert hasher.verify("secret123", bad_hash) is False

    def test_default_cost_is_twelve(self):
        stored = PasswordHasher().hash("secret123")
        assert stored.split("$")[2] == "12"


class TestSessionTokenGenerator:
    def test_token_is_256_bit_hex(self):
        token = SessionTokenGenerator().generate()
        assert re.fullmatch(r"[0-9a-f]{64}", token)

    def test_tokens_do_not_repeat(self):
        gen = SessionTokenGenerator()
        tokens = {gen.generate() for _ in range(1000)}
        assert len(tokens) == 1000

    def test_short_tokens_refused(self):
        with pytest.raises(ValueError):
            SessionTokenGenerator(num_bytes=16)


class TestPasswordLengthLimit:
    def test_seventy_two_byte_password_roundtrips(self, hasher):
        password = "я" * 36
        assert len(password.encode("utf-8")) == 72
        assert hasher.verify(password, hasher.hash(password))

    def test_verify_dummy_always_fails(self, hasher):
        assert hasher.verify_dummy("secret123") is False
        assert hasher.verify_dummy("secret123") is False
