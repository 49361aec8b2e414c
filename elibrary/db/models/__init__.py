"""ORM models aggregate exports."""
from .storage import (  # noqa: F401
    Base,
    StorageItem,
    PendingMutation,
)

__all__ = [
    "Base",
    "StorageItem",
    "PendingMutation",
]
