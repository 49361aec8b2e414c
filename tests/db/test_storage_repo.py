"""Tests for storage_repo key/value helpers using in-memory SQLite."""
from __future__ import annotations

from elibrary.db import store_session
from elibrary.db.models import StorageItem
from elibrary.db.repositories import storage_repo


def _count_rows() -> int:
    with store_session() as session:
        return session.query(StorageItem).count()


def test_set_value_inserts_then_overwrites():
    storage_repo.set_value("demo-pdfs", "[]")
    storage_repo.set_value("demo-pdfs", '[{"id":"1"}]')

    assert storage_repo.get_value("demo-pdfs") == '[{"id":"1"}]'
    assert _count_rows() == 1


def test_missing_key_is_distinguished_from_empty_value():
    assert storage_repo.get_value("nope") is None
    assert storage_repo.has_key("nope") is False

    storage_repo.set_value("empty", "")

    assert storage_repo.has_key("empty") is True
    assert storage_repo.get_value("empty") == ""


def test_delete_key_reports_whether_anything_was_removed():
    storage_repo.set_value("auth-token", "abc")

    assert storage_repo.delete_key("auth-token") is True
    assert storage_repo.delete_key("auth-token") is False


def test_modify_value_sees_current_value_and_can_delete():
    seen = []

    def _append(current):
        seen.append(current)
        return (current or "") + "x"

    storage_repo.modify_value("counter", _append)
    storage_repo.modify_value("counter", _append)
    assert seen == [None, "x"]
    assert storage_repo.get_value("counter") == "xx"

    storage_repo.modify_value("counter", lambda current: None)
    assert storage_repo.has_key("counter") is False


def test_keys_with_prefix_treats_wildcards_literally():
    storage_repo.set_value("demo-notes:1", "[]")
    storage_repo.set_value("demo-notes:2", "[]")
    storage_repo.set_value("demo-pdfs", "[]")
    storage_repo.set_value("my_ns-notes:1", "[]")
    storage_repo.set_value("myXns-notes:1", "[]")

    assert storage_repo.keys_with_prefix("demo-notes:") == ["demo-notes:1", "demo-notes:2"]
    assert storage_repo.keys_with_prefix("my_ns-notes:") == ["my_ns-notes:1"]
