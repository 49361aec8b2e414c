"""Repository helpers for raw key/value storage rows."""
from __future__ import annotations

from typing import Callable, List, Optional

from elibrary.db import store_session
from elibrary.db.models import StorageItem


def get_value(key: str) -> Optional[str]:
    with store_session() as session:
        row = session.get(StorageItem, key)
        return row.value if row is not None else None


def has_key(key: str) -> bool:
    with store_session() as session:
        return session.get(StorageItem, key) is not None


def set_value(key: str, value: str) -> None:
    with store_session() as session:
        row = session.get(StorageItem, key)
        if row is None:
            session.add(StorageItem(key=key, value=value))
        else:
            row.value = value


def delete_key(key: str) -> bool:
    with store_session() as session:
        deleted = session.query(StorageItem).filter(StorageItem.key == key).delete(synchronize_session=False)
        return bool(deleted)


def modify_value(key: str, mutate: Callable[[Optional[str]], Optional[str]]) -> Optional[str]:
    """Read-modify-write one key inside a single transaction.

    ``mutate`` receives the current raw value (None when absent) and returns
    the new value; returning None deletes the key.
    """
    with store_session() as session:
        row = session.get(StorageItem, key)
        new_value = mutate(row.value if row is not None else None)
        if new_value is None:
            if row is not None:
                session.delete(row)
        elif row is None:
            session.add(StorageItem(key=key, value=new_value))
        else:
            row.value = new_value
        return new_value


def keys_with_prefix(prefix: str) -> List[str]:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    with store_session() as session:
        rows = (
            session.query(StorageItem.key)
            .filter(StorageItem.key.like(f"{escaped}%", escape="\\"))
            .order_by(StorageItem.key.asc())
            .all()
        )
        return [row[0] for row in rows]


__all__ = [
    "get_value",
    "has_key",
    "set_value",
    "delete_key",
    "modify_value",
    "keys_with_prefix",
]
