"""Repository modules for the local store."""
from . import storage_repo, outbox_repo  # noqa: F401

__all__ = ["storage_repo", "outbox_repo"]
