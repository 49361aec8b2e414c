"""Local fallback store: durable mirrors of the documents and notes collections.

Collections are JSON arrays stored under namespaced keys, newest first:

    <ns>-pdfs               documents
    <ns>-notes:<pdfId>      notes of one document
    <ns>-last-upload        transient {name, size} of the last upload

A key that is entirely absent is seeded from the injected provider on first
access; an existing key (even ``[]``) is never reseeded.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from datetime import datetime

from elibrary.db.repositories import storage_repo
from elibrary.services.records import Document, Note, RecordFormatError, SyncState
from elibrary.services.seed_provider import NoSeedProvider, SeedProvider
from elibrary.utils.logging import get_logger
from elibrary.utils.timestamps import utcnow

LOG = get_logger("local_store")

Record = Dict[str, Any]


def _decode(key: str, raw: Optional[str]) -> List[Record]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        LOG.warning("Ignoring unreadable local collection key=%s", key)
        return []
    if not isinstance(data, list):
        LOG.warning("Ignoring non-list local collection key=%s", key)
        return []
    return [item for item in data if isinstance(item, dict)]


def _encode(records: List[Record]) -> str:
    return json.dumps(records, separators=(",", ":"))


class LocalFallbackStore:
    def __init__(
        self,
        namespace: str,
        seed_provider: Optional[SeedProvider] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.namespace = namespace
        self.seed_provider = seed_provider or NoSeedProvider()
        self.clock = clock

    # -- keys ---------------------------------------------------------------

    @property
    def documents_key(self) -> str:
        return f"{self.namespace}-pdfs"

    @property
    def notes_prefix(self) -> str:
        return f"{self.namespace}-notes:"

    def notes_key(self, document_id: str) -> str:
        return f"{self.notes_prefix}{document_id}"

    @property
    def last_upload_key(self) -> str:
        return f"{self.namespace}-last-upload"

    # -- seeding ------------------------------------------------------------

    def _seed_records(self, key: str) -> Optional[List[Record]]:
        now = self.clock()
        seeded: Optional[list] = None
        if key == self.documents_key:
            seeded = self.seed_provider.seed_documents(now)
        elif key.startswith(self.notes_prefix):
            seeded = self.seed_provider.seed_notes(key[len(self.notes_prefix):], now)
        if seeded is None:
            return None
        return [record.to_payload() for record in seeded]

    # -- raw collection operations ------------------------------------------

    def read(self, key: str) -> List[Record]:
        raw = storage_repo.get_value(key)
        if raw is not None:
            return _decode(key, raw)
        seeded = self._seed_records(key)
        if seeded is None:
            return []

        def _materialize(current: Optional[str]) -> str:
            # another writer may have created the key since the check above
            return current if current is not None else _encode(seeded)

        stored = storage_repo.modify_value(key, _materialize)
        LOG.debug("Seeded local collection key=%s records=%s", key, len(seeded))
        return _decode(key, stored)

    def write(self, key: str, records: List[Record]) -> None:
        storage_repo.set_value(key, _encode(list(records)))

    def _mutate(self, key: str, change: Callable[[List[Record]], List[Record]]) -> List[Record]:
        result: List[List[Record]] = []

        def _apply(current: Optional[str]) -> str:
            if current is None:
                base = self._seed_records(key) or []
            else:
                base = _decode(key, current)
            updated = change(base)
            result.append(updated)
            return _encode(updated)

        storage_repo.modify_value(key, _apply)
        return result[0]

    def append(self, key: str, record: Record) -> List[Record]:
        """Insert ``record`` at the head (newest first), replacing a same-id entry."""
        record_id = str(record.get("id"))
        return self._mutate(key, lambda items: [record] + [r for r in items if str(r.get("id")) != record_id])

    def remove_by_id(self, key: str, record_id: str) -> bool:
        removed: List[bool] = []

        def _change(items: List[Record]) -> List[Record]:
            kept = [r for r in items if str(r.get("id")) != str(record_id)]
            removed.append(len(kept) != len(items))
            return kept

        self._mutate(key, _change)
        return removed[0]

    def replace_by_id(self, key: str, record_id: str, record: Record) -> bool:
        """Swap the entry with ``record_id`` for ``record`` in place."""
        replaced: List[bool] = []

        def _change(items: List[Record]) -> List[Record]:
            out: List[Record] = []
            hit = False
            for item in items:
                if str(item.get("id")) == str(record_id) and not hit:
                    out.append(record)
                    hit = True
                elif str(item.get("id")) == str(record.get("id")) and str(record_id) != str(record.get("id")):
                    continue  # promoted id already mirrored; keep one copy
                else:
                    out.append(item)
            replaced.append(hit)
            return out

        self._mutate(key, _change)
        return replaced[0]

    def contains(self, key: str, record_id: str) -> bool:
        return any(str(r.get("id")) == str(record_id) for r in self.read(key))

    def has(self, key: str) -> bool:
        return storage_repo.has_key(key)

    def drop(self, key: str) -> bool:
        return storage_repo.delete_key(key)

    def rename(self, old_key: str, new_key: str) -> None:
        """Move a collection to a new key, merging into existing entries."""
        raw = storage_repo.get_value(old_key)
        if raw is None:
            return
        moved = _decode(old_key, raw)
        if storage_repo.has_key(new_key):
            existing = _decode(new_key, storage_repo.get_value(new_key))
            seen = {str(r.get("id")) for r in moved}
            moved = moved + [r for r in existing if str(r.get("id")) not in seen]
        self.write(new_key, moved)
        storage_repo.delete_key(old_key)

    # -- typed helpers ------------------------------------------------------

    def read_documents(self) -> List[Document]:
        docs = []
        for item in self.read(self.documents_key):
            try:
                docs.append(Document.from_payload(item, default_state=SyncState.LOCAL))
            except RecordFormatError:
                LOG.warning("Skipping malformed local document entry")
        return docs

    def read_notes(self, document_id: str) -> List[Note]:
        notes = []
        for item in self.read(self.notes_key(document_id)):
            try:
                notes.append(Note.from_payload(item, default_state=SyncState.LOCAL))
            except RecordFormatError:
                LOG.warning("Skipping malformed local note entry document_id=%s", document_id)
        return notes

    def find_note(self, note_id: str) -> Optional[Tuple[str, Note]]:
        """Locate a note in any already-materialized notes collection."""
        for key in storage_repo.keys_with_prefix(self.notes_prefix):
            for item in _decode(key, storage_repo.get_value(key)):
                if str(item.get("id")) == str(note_id):
                    try:
                        return key, Note.from_payload(item, default_state=SyncState.LOCAL)
                    except RecordFormatError:
                        return None
        return None

    def note_ids(self) -> Set[str]:
        """Ids of every note in any materialized notes collection."""
        ids: Set[str] = set()
        for key in storage_repo.keys_with_prefix(self.notes_prefix):
            ids.update(str(item.get("id")) for item in _decode(key, storage_repo.get_value(key)))
        return ids

    # -- last upload marker -------------------------------------------------

    def put_last_upload(self, name: str, size: int) -> None:
        storage_repo.set_value(self.last_upload_key, json.dumps({"name": name, "size": size}))

    def consume_last_upload(self) -> Optional[Record]:
        taken: List[Optional[str]] = []

        def _take(current: Optional[str]) -> None:
            taken.append(current)
            return None

        storage_repo.modify_value(self.last_upload_key, _take)
        raw = taken[0]
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


__all__ = ["LocalFallbackStore"]
