"""Service exports."""

from .http_client import (
    ElibraryError,
    NetworkError,
    RemoteError,
    UnauthorizedError,
    HttpClient,
)
from .api_client import ApiClient
from .local_store import LocalFallbackStore
from .records import Document, Note, PdfFile, SyncState, User, AuthResult
from .reconciler import ReconcileReport
from .seed_provider import DemoSeedProvider, NoSeedProvider, SeedProvider
from .session import Session
from .sync_policy import SyncPolicy, RecordNotFoundError
from .token_store import TokenStore
from .validation import ValidationError

__all__ = [
    "ElibraryError",
    "NetworkError",
    "RemoteError",
    "UnauthorizedError",
    "HttpClient",
    "ApiClient",
    "LocalFallbackStore",
    "Document",
    "Note",
    "PdfFile",
    "SyncState",
    "User",
    "AuthResult",
    "ReconcileReport",
    "DemoSeedProvider",
    "NoSeedProvider",
    "SeedProvider",
    "Session",
    "SyncPolicy",
    "RecordNotFoundError",
    "TokenStore",
    "ValidationError",
]
