"""Client initialization / wiring.

Orchestrates: local store DB init, token store, HTTP/API clients, session,
seed provider selection and the sync policy. Everything is built from
``elibrary.config`` unless overridden by keyword arguments.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from elibrary import config as app_config
from elibrary.db import init_engine_once
from elibrary.services.api_client import ApiClient
from elibrary.services.http_client import HttpClient
from elibrary.services.local_store import LocalFallbackStore
from elibrary.services.seed_provider import DemoSeedProvider, NoSeedProvider, SeedProvider
from elibrary.services.session import Session
from elibrary.services.sync_policy import SyncPolicy
from elibrary.services.token_store import TokenStore
from elibrary.utils.logging import get_logger
from elibrary.utils.timestamps import utcnow

LOG = get_logger("elibrary.startup")


@dataclass
class ElibraryClient:
    session: Session
    api: ApiClient
    store: LocalFallbackStore
    sync: SyncPolicy

    def logout(self) -> None:
        self.session.logout()


def default_seed_provider() -> SeedProvider:
    return DemoSeedProvider() if app_config.demo_seed_enabled() else NoSeedProvider()


def build_client(
    *,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    namespace: Optional[str] = None,
    seed_provider: Optional[SeedProvider] = None,
    on_unauthorized: Optional[Callable[[], None]] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ElibraryClient:
    init_engine_once()
    token_store = TokenStore()
    http = HttpClient(token_store, base_url=base_url, timeout=timeout, on_unauthorized=on_unauthorized)
    api = ApiClient(http)
    session = Session(api.auth, token_store, demo_auth=app_config.demo_auth_enabled(), clock=clock)
    store = LocalFallbackStore(
        namespace or app_config.storage_namespace(),
        seed_provider if seed_provider is not None else default_seed_provider(),
        clock=clock,
    )
    sync = SyncPolicy(api, store, session, max_attempts=app_config.sync_max_attempts(), clock=clock)
    LOG.debug("Client wired api=%s namespace=%s", http.base_url, store.namespace)
    return ElibraryClient(session=session, api=api, store=store, sync=sync)


__all__ = ["ElibraryClient", "build_client", "default_seed_provider"]
