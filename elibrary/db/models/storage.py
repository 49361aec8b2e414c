"""ORM models for the local store (key/value mirror + sync outbox)."""
from __future__ import annotations

import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class StorageItem(Base):
    """One durable key/value slot, the local counterpart of browser storage.

    ``value`` holds raw text (JSON for collections, plain text for tokens).
    A missing row means "key absent", which is what triggers seeding.
    """

    __tablename__ = "storage_items"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)


class PendingMutation(Base):
    """Outbox row for a mutation applied locally but not yet on the backend."""

    __tablename__ = "pending_mutations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False)
    namespace = Column(String(128), nullable=False)
    target_id = Column(String(64), nullable=False)
    document_id = Column(String(64), nullable=True)
    payload = Column(Text, nullable=False, default="{}")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_pending_mutations_target", "namespace", "target_id"),
        Index("ix_pending_mutations_document", "namespace", "document_id"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<PendingMutation id={self.id} kind={self.kind} target={self.target_id}>"
