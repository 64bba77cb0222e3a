"""
Opaque session tokens.

Tokens carry no payload; they are random hex strings looked up in the
session table on every request.
"""

from __future__ import annotations

import secrets
from typing import Optional

from config.settings import config

_MIN_TOKEN_BYTES = 32


class SessionTokenGenerator:
    def __init__(self, num_bytes: Optional[int] = None) -> None:
        num_bytes = num_bytes if num_bytes is not None else config.session_token_bytes
        if num_bytes < _MIN_TOKEN_BYTES:
            raise ValueError(
                f"session tokens need at least {_MIN_TOKEN_BYTES} random bytes, got {num_bytes}"
            )
        self.num_bytes = num_bytes

    def generate(self) -> str:
        """Return ``num_bytes`` of CSPRNG output, hex-encoded."""
        return secrets.token_hex(self.num_bytes)
