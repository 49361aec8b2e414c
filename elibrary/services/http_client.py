"""Outbound HTTP transport for the E-Library backend.

Responsibilities:
    * Prefix paths with the configured ``/api`` base URL
    * Attach ``Authorization: Bearer <token>`` when a token is stored
    * Evict the session on 401 and notify the unauthorized hook
    * Map transport failures and non-2xx statuses to typed errors

No retries: the caller (sync policy) decides what happens after a failure.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from elibrary import config as app_config
from elibrary.services.token_store import TokenStore
from elibrary.utils.logging import get_logger

LOG = get_logger("http_client")


class ElibraryError(RuntimeError):
    """Base error for backend communication failures."""


class NetworkError(ElibraryError):
    """Raised when no response was received (connection, DNS, timeout)."""


class RemoteError(ElibraryError):
    """Raised for any non-2xx response."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class UnauthorizedError(RemoteError):
    """Raised for 401 responses after the session has been evicted."""


@dataclass(frozen=True)
class HttpResponse:
    status: int
    data: Any


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    text = (resp.text or "").strip()
    return text[:300] if text else (resp.reason or "http_error")


def _log_unauthorized() -> None:
    LOG.info("Session expired or rejected; login required")


class HttpClient:
    def __init__(
        self,
        token_store: TokenStore,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ) -> None:
        self.token_store = token_store
        self.base_url = (base_url or app_config.api_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else app_config.http_timeout()
        self.on_unauthorized = on_unauthorized or _log_unauthorized

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_store.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def send(
        self,
        method: str,
        path: str,
        json: Any = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> HttpResponse:
        url = self.url_for(path)
        kwargs: Dict[str, Any] = {"headers": self._headers(), "timeout": self.timeout}
        if files is not None:
            # requests sets the multipart boundary header itself
            kwargs["files"] = files
        elif json is not None:
            kwargs["json"] = json
        try:
            resp = requests.request(method.upper(), url, **kwargs)
        except requests.RequestException as exc:
            LOG.debug("%s %s failed: %s", method.upper(), url, exc)
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if resp.status_code == 401:
            LOG.warning("%s %s -> 401; clearing stored session", method.upper(), path)
            self.token_store.clear()
            self.on_unauthorized()
            raise UnauthorizedError(401, _error_message(resp))
        if not 200 <= resp.status_code < 300:
            message = _error_message(resp)
            LOG.debug("%s %s -> %s %s", method.upper(), path, resp.status_code, message)
            raise RemoteError(resp.status_code, message)

        if resp.status_code == 204 or not resp.content:
            return HttpResponse(status=resp.status_code, data=None)
        try:
            data = resp.json()
        except ValueError:
            data = resp.text
        return HttpResponse(status=resp.status_code, data=data)


__all__ = [
    "ElibraryError",
    "NetworkError",
    "RemoteError",
    "UnauthorizedError",
    "HttpResponse",
    "HttpClient",
]
