"""Shared fixtures: in-memory local store, fake transport, controllable clock."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

from elibrary.db.engine import init_engine_once, reset_for_tests
from elibrary.services import http_client
from elibrary.startup.wiring import build_client

BACKEND = "http://backend.test/api"


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ELIBRARY_STORE_PATH", ":memory:")
    monkeypatch.delenv("ELIBRARY_DEMO_AUTH", raising=False)
    monkeypatch.delenv("ELIBRARY_DEMO_SEED", raising=False)
    monkeypatch.delenv("ELIBRARY_STORAGE_NAMESPACE", raising=False)
    init_engine_once()
    yield
    reset_for_tests(drop=True)


class DummyResp:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._payload = payload
        self.reason = "OK" if status_code < 400 else "Error"
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class Transport:
    """Stand-in for ``requests.request``; offline until a handler is set."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.handler: Optional[Callable[..., DummyResp]] = None

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.handler is None:
            raise requests.ConnectionError("backend unreachable")
        return self.handler(method, url, **kwargs)

    def paths(self) -> List[str]:
        return [f"{c['method']} {c['url'][len(BACKEND):]}" for c in self.calls]


@pytest.fixture
def transport(monkeypatch) -> Transport:
    fake = Transport()
    monkeypatch.setattr(http_client.requests, "request", fake)
    return fake


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(transport, clock):
    return build_client(base_url=BACKEND, clock=clock)


@pytest.fixture
def make_resp():
    return DummyResp
