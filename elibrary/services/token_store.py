"""Durable storage of the session token and the user profile issued with it."""
from __future__ import annotations

import json
from typing import Optional

from elibrary.db.repositories import storage_repo
from elibrary.services.records import RecordFormatError, User
from elibrary.utils.logging import get_logger

LOG = get_logger("token_store")

TOKEN_KEY = "auth-token"
USER_KEY = "auth-user"


class TokenStore:
    """Key/value wrapper over the local store for ``auth-token``/``auth-user``."""

    def __init__(self, token_key: str = TOKEN_KEY, user_key: str = USER_KEY) -> None:
        self.token_key = token_key
        self.user_key = user_key

    def get_token(self) -> Optional[str]:
        value = storage_repo.get_value(self.token_key)
        return value or None

    def set_token(self, token: str) -> None:
        storage_repo.set_value(self.token_key, token)

    def remove_token(self) -> None:
        storage_repo.delete_key(self.token_key)

    def get_user(self) -> Optional[User]:
        raw = storage_repo.get_value(self.user_key)
        if not raw:
            return None
        try:
            return User.from_payload(json.loads(raw))
        except (ValueError, RecordFormatError):
            LOG.warning("Discarding unreadable stored user profile")
            storage_repo.delete_key(self.user_key)
            return None

    def set_user(self, user: User) -> None:
        storage_repo.set_value(self.user_key, json.dumps(user.to_payload(), sort_keys=True))

    def clear(self) -> None:
        storage_repo.delete_key(self.token_key)
        storage_repo.delete_key(self.user_key)


__all__ = ["TokenStore", "TOKEN_KEY", "USER_KEY"]
