"""Client configuration accessors.

Centralizes environment variable parsing & defaults. Every accessor reads the
environment at call time so tests can monkeypatch variables freely.
"""
from __future__ import annotations

import os
from functools import lru_cache

APP_NAME = "elibrary"
APP_VERSION = "0.4.0"
APP_DESCRIPTION = "E-Library client with local fallback storage"

DEFAULT_API_URL = "http://localhost:5000"
DEFAULT_STORE_PATH = "elibrary.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_NAMESPACE = "demo"
DEFAULT_SYNC_MAX_ATTEMPTS = 5
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
_TRUE = {"1", "true", "yes", "on"}


def _raw_env(name: str, default: str | None = None) -> str | None:
    val = os.getenv(name)
    return val if val is not None else default


def env_bool(name: str, default: bool = False) -> bool:
    raw = _raw_env(name, str(default).lower())
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


def api_base_url() -> str:
    """Backend root URL without the ``/api`` suffix."""
    raw = (_raw_env("ELIBRARY_API_URL", DEFAULT_API_URL) or "").strip()
    return (raw or DEFAULT_API_URL).rstrip("/")


def api_url() -> str:
    return f"{api_base_url()}/api"


def get_store_path() -> str:
    raw = _raw_env("ELIBRARY_STORE_PATH", DEFAULT_STORE_PATH)
    if raw and raw != ":memory:" and not os.path.isabs(raw):
        home = os.getenv("ELIBRARY_HOME")
        if home:
            return os.path.join(home, raw)
    return raw  # type: ignore[return-value]


def log_level_name() -> str:
    return _raw_env("ELIBRARY_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()  # type: ignore[union-attr]


def http_timeout() -> float:
    raw = _raw_env("ELIBRARY_HTTP_TIMEOUT")
    if raw is None:
        return DEFAULT_HTTP_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_HTTP_TIMEOUT
    return value if value > 0 else DEFAULT_HTTP_TIMEOUT


def storage_namespace() -> str:
    value = (_raw_env("ELIBRARY_STORAGE_NAMESPACE", DEFAULT_NAMESPACE) or "").strip()
    return value or DEFAULT_NAMESPACE


def demo_seed_enabled() -> bool:
    return env_bool("ELIBRARY_DEMO_SEED", True)


def demo_auth_enabled() -> bool:
    return env_bool("ELIBRARY_DEMO_AUTH", False)


def sync_max_attempts() -> int:
    raw = _raw_env("ELIBRARY_SYNC_MAX_ATTEMPTS")
    if raw is None:
        return DEFAULT_SYNC_MAX_ATTEMPTS
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_SYNC_MAX_ATTEMPTS
    return max(1, value)


@lru_cache(maxsize=1)
def metadata() -> dict:
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": APP_DESCRIPTION,
    }


def summarize_runtime_config() -> dict:
    return {
        "api_url": api_url(),
        "store_path": get_store_path(),
        "log_level": log_level_name(),
        "http_timeout": http_timeout(),
        "storage_namespace": storage_namespace(),
        "demo_seed": demo_seed_enabled(),
        "demo_auth": demo_auth_enabled(),
        "sync_max_attempts": sync_max_attempts(),
    }


__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
    "MAX_UPLOAD_BYTES",
    "env_bool",
    "api_base_url",
    "api_url",
    "get_store_path",
    "log_level_name",
    "http_timeout",
    "storage_namespace",
    "demo_seed_enabled",
    "demo_auth_enabled",
    "sync_max_attempts",
    "metadata",
    "summarize_runtime_config",
]
