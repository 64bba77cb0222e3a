"""
Error kinds surfaced by the auth layer, and their user-facing messages.

Expected failures (duplicate email, wrong password, ...) are returned as
``AuthFailure`` values.  Only infrastructure problems are raised, as
``auth.store.StoreError``.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel

from config.settings import config


class AuthErrorKind(str, Enum):
    DUPLICATE_EMAIL = "duplicate_email"
    DUPLICATE_USERNAME = "duplicate_username"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    NO_TOKEN = "no_token"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


class AuthFailure(BaseModel):
    kind: AuthErrorKind

    def message(self, locale: Optional[str] = None) -> str:
        return message_for(self.kind, locale)


# ── Message catalogues ─────────────────────────────────────────────────

_MESSAGES: Dict[str, Dict[AuthErrorKind, str]] = {
    "en": {
        AuthErrorKind.DUPLICATE_EMAIL: "A user with this email already exists",
        AuthErrorKind.DUPLICATE_USERNAME: "A user with this username already exists",
        AuthErrorKind.INVALID_CREDENTIALS: "Invalid email or password",
        AuthErrorKind.ACCOUNT_DISABLED: "This account has been disabled",
        AuthErrorKind.NO_TOKEN: "Authentication required",
        AuthErrorKind.FORBIDDEN: "Administrator rights required",
        AuthErrorKind.NOT_FOUND: "User not found",
    },
    "ru": {
        AuthErrorKind.DUPLICATE_EMAIL: "Пользователь с таким email уже существует",
        AuthErrorKind.DUPLICATE_USERNAME: "Пользователь с таким именем уже существует",
        AuthErrorKind.INVALID_CREDENTIALS: "Неверный email или пароль",
        AuthErrorKind.ACCOUNT_DISABLED: "Аккаунт заблокирован",
        AuthErrorKind.NO_TOKEN: "Требуется авторизация",
        AuthErrorKind.FORBIDDEN: "Требуются права администратора",
        AuthErrorKind.NOT_FOUND: "Пользователь не найден",
    },
}


def pick_locale(accept_language: Optional[str]) -> str:
    """
    Choose a supported locale from an ``Accept-Language`` header value.

    Quality weights are ignored; the first supported language tag wins.
    """
    if accept_language:
        for part in accept_language.split(","):
            tag = part.split(";", 1)[0].strip().lower()
            lang = tag.split("-", 1)[0]
            if lang in _MESSAGES:
                return lang
    return config.default_locale if config.default_locale in _MESSAGES else "en"


def message_for(kind: AuthErrorKind, locale: Optional[str] = None) -> str:
    catalogue = _MESSAGES.get(locale or config.default_locale, _MESSAGES["en"])
    return catalogue[kind]
