"""Seed providers for local collections that have never been written.

The local store asks its provider for initial records the first time a key
is read and found absent. ``DemoSeedProvider`` supplies the fixed demo
library; ``NoSeedProvider`` leaves absent keys empty.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from elibrary.services.records import Document, Note, SyncState

DEMO_OWNER_ID = "demo-user"

_DEMO_DOCUMENTS = (
    # (id, title, filename, age)
    ("1", "Introduction to Machine Learning", "ml-introduction.pdf", timedelta(0)),
    ("2", "React Development Guide", "react-guide.pdf", timedelta(days=1)),
    ("3", "Database Design Principles", "database-design.pdf", timedelta(days=7)),
)

_DEMO_NOTES = (
    # (suffix, content, age)
    ("1", "Key ideas from the opening chapter are worth revisiting before moving on.", timedelta(hours=1)),
    ("2", "Follow up on the references listed at the end of this section.", timedelta(days=1)),
)


class SeedProvider:
    """Interface: return seed records, or None to leave the key absent."""

    def seed_documents(self, now: datetime) -> Optional[List[Document]]:
        return None

    def seed_notes(self, document_id: str, now: datetime) -> Optional[List[Note]]:
        return None


class NoSeedProvider(SeedProvider):
    pass


class DemoSeedProvider(SeedProvider):
    def __init__(self, owner_id: str = DEMO_OWNER_ID) -> None:
        self.owner_id = owner_id

    def seed_documents(self, now: datetime) -> List[Document]:
        return [
            Document(
                id=doc_id,
                title=title,
                filename=filename,
                upload_date=now - age,
                owner_id=self.owner_id,
                sync_state=SyncState.DEMO,
            )
            for doc_id, title, filename, age in _DEMO_DOCUMENTS
        ]

    def seed_notes(self, document_id: str, now: datetime) -> List[Note]:
        notes = []
        for suffix, content, age in _DEMO_NOTES:
            stamp = now - age
            notes.append(
                Note(
                    id=f"demo-{document_id}-{suffix}",
                    content=content,
                    created_at=stamp,
                    updated_at=stamp,
                    document_id=document_id,
                    owner_id=self.owner_id,
                    sync_state=SyncState.DEMO,
                )
            )
        return notes


__all__ = ["SeedProvider", "NoSeedProvider", "DemoSeedProvider", "DEMO_OWNER_ID"]
