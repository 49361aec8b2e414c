"""Explicit session object: the current token and user.

Owned by the application container and passed to whatever needs to know who
is signed in. ``logout()`` clears both the durable token store and the
in-memory user.
"""
from __future__ import annotations

from typing import Callable, Optional
from datetime import datetime

from elibrary.services.api_client import AuthAPI
from elibrary.services.http_client import NetworkError
from elibrary.services.records import AuthResult, User
from elibrary.services.token_store import TokenStore
from elibrary.services.validation import ValidationError
from elibrary.utils.identity import normalize_email
from elibrary.utils.logging import get_logger
from elibrary.utils.timestamps import epoch_millis, utcnow

LOG = get_logger("session")

DEMO_TOKEN_PREFIX = "demo-jwt-token-"


class Session:
    def __init__(
        self,
        auth_api: AuthAPI,
        token_store: TokenStore,
        *,
        demo_auth: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.auth_api = auth_api
        self.token_store = token_store
        self.demo_auth = demo_auth
        self.clock = clock
        self._user: Optional[User] = None
        self.restore()

    def restore(self) -> Optional[User]:
        """Reload the user from storage; a user without a token is discarded."""
        token = self.token_store.get_token()
        self._user = self.token_store.get_user() if token else None
        if not token:
            self.token_store.clear()
        return self._user

    @property
    def user(self) -> Optional[User]:
        if self._user is not None and not self.token_store.get_token():
            # evicted underneath us (401 observed by the HTTP client)
            self._user = None
        return self._user

    @property
    def token(self) -> Optional[str]:
        return self.token_store.get_token()

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def owner_id(self) -> Optional[str]:
        user = self.user
        return user.id if user else None

    def _establish(self, result: AuthResult) -> AuthResult:
        self.token_store.set_token(result.token)
        self.token_store.set_user(result.user)
        self._user = result.user
        return result

    def login(self, email: str, password: str) -> AuthResult:
        normalized = normalize_email(email)
        if not normalized:
            raise ValidationError("email_required")
        if not password:
            raise ValidationError("password_required")
        try:
            result = self.auth_api.login(normalized, password)
        except NetworkError:
            if not self.demo_auth:
                raise
            LOG.warning("Auth backend unreachable; issuing demo session for %s", normalized)
            stamp = epoch_millis(self.clock())
            result = AuthResult(
                token=f"{DEMO_TOKEN_PREFIX}{stamp}",
                user=User(id="demo-user-1", username=normalized.split("@")[0] or "Demo User", email=normalized),
            )
        LOG.info("Signed in user_id=%s", result.user.id)
        return self._establish(result)

    def register(self, username: str, email: str, password: str) -> AuthResult:
        cleaned_name = (username or "").strip()
        normalized = normalize_email(email)
        if not cleaned_name:
            raise ValidationError("username_required")
        if not normalized:
            raise ValidationError("email_required")
        if not password:
            raise ValidationError("password_required")
        try:
            result = self.auth_api.register(cleaned_name, normalized, password)
        except NetworkError:
            if not self.demo_auth:
                raise
            LOG.warning("Auth backend unreachable; issuing demo registration for %s", normalized)
            stamp = epoch_millis(self.clock())
            result = AuthResult(
                token=f"{DEMO_TOKEN_PREFIX}{stamp}",
                user=User(id=f"demo-user-{stamp}", username=cleaned_name, email=normalized),
            )
        LOG.info("Registered user_id=%s", result.user.id)
        return self._establish(result)

    def logout(self) -> None:
        self.token_store.clear()
        self._user = None
        LOG.info("Signed out")


__all__ = ["Session", "DEMO_TOKEN_PREFIX"]
