"""Domain records exchanged between the API client, local store and callers.

Records serialize to the backend's camelCase wire format (``uploadDate``,
``userId``, ``pdfId``) and accept the ``ownerId``/``documentId``/``_id``
aliases some deployments emit.
"""
from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from elibrary.utils.timestamps import format_timestamp, parse_timestamp

PDF_CONTENT_TYPE = "application/pdf"


class SyncState(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    DEMO = "demo"


class RecordFormatError(ValueError):
    """Raised when a payload cannot be turned into a record."""


def _first(payload: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return None


def _required_id(payload: Dict[str, Any]) -> str:
    raw = _first(payload, "id", "_id")
    if raw is None or str(raw).strip() == "":
        raise RecordFormatError("id_required")
    return str(raw).strip()


def _required_timestamp(payload: Dict[str, Any], error: str, *names: str) -> datetime:
    # uploadDate/createdAt are immutable and never synthesized
    stamp = parse_timestamp(_first(payload, *names))
    if stamp is None:
        raise RecordFormatError(error)
    return stamp


def _sync_state(payload: Dict[str, Any], default: SyncState) -> SyncState:
    raw = payload.get("syncState")
    try:
        return SyncState(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class User:
    id: str
    username: str
    email: str

    @classmethod
    def from_payload(cls, payload: Any) -> "User":
        if not isinstance(payload, dict):
            raise RecordFormatError("user_invalid")
        return cls(
            id=_required_id(payload),
            username=str(payload.get("username") or payload.get("name") or ""),
            email=str(payload.get("email") or ""),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "email": self.email}


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: User


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    filename: str
    upload_date: datetime
    owner_id: str
    sync_state: SyncState = SyncState.REMOTE

    @classmethod
    def from_payload(cls, payload: Any, *, default_state: SyncState = SyncState.REMOTE) -> "Document":
        if not isinstance(payload, dict):
            raise RecordFormatError("document_invalid")
        filename = str(payload.get("filename") or payload.get("originalName") or "")
        title = str(payload.get("title") or "") or strip_pdf_suffix(filename) or "Untitled"
        return cls(
            id=_required_id(payload),
            title=title,
            filename=filename,
            upload_date=_required_timestamp(payload, "document_upload_date_missing", "uploadDate", "createdAt"),
            owner_id=str(_first(payload, "userId", "ownerId") or ""),
            sync_state=_sync_state(payload, default_state),
        )

    def to_payload(self, *, include_state: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "filename": self.filename,
            "uploadDate": format_timestamp(self.upload_date),
            "userId": self.owner_id,
        }
        if include_state:
            data["syncState"] = self.sync_state.value
        return data

    def with_state(self, state: SyncState) -> "Document":
        return replace(self, sync_state=state)


@dataclass(frozen=True)
class Note:
    id: str
    content: str
    created_at: datetime
    updated_at: datetime
    document_id: str
    owner_id: str
    sync_state: SyncState = SyncState.REMOTE

    @classmethod
    def from_payload(cls, payload: Any, *, default_state: SyncState = SyncState.REMOTE) -> "Note":
        if not isinstance(payload, dict):
            raise RecordFormatError("note_invalid")
        created = _required_timestamp(payload, "note_created_at_missing", "createdAt")
        updated = parse_timestamp(payload.get("updatedAt")) or created
        if updated < created:
            updated = created
        return cls(
            id=_required_id(payload),
            content=str(payload.get("content") or ""),
            created_at=created,
            updated_at=updated,
            document_id=str(_first(payload, "pdfId", "documentId") or ""),
            owner_id=str(_first(payload, "userId", "ownerId") or ""),
            sync_state=_sync_state(payload, default_state),
        )

    def to_payload(self, *, include_state: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "pdfId": self.document_id,
            "userId": self.owner_id,
        }
        if include_state:
            data["syncState"] = self.sync_state.value
        return data

    def with_state(self, state: SyncState) -> "Note":
        return replace(self, sync_state=state)

    @property
    def edited(self) -> bool:
        return self.updated_at != self.created_at


@dataclass(frozen=True)
class PdfFile:
    """An upload candidate: file name, declared MIME type and raw bytes."""

    name: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str) -> "PdfFile":
        name = os.path.basename(path)
        guessed, _ = mimetypes.guess_type(name)
        with open(path, "rb") as fh:
            data = fh.read()
        return cls(name=name, content_type=guessed or "application/octet-stream", data=data)


def strip_pdf_suffix(filename: Optional[str]) -> str:
    name = (filename or "").strip()
    if name.lower().endswith(".pdf"):
        name = name[:-4]
    return name


__all__ = [
    "PDF_CONTENT_TYPE",
    "SyncState",
    "RecordFormatError",
    "User",
    "AuthResult",
    "Document",
    "Note",
    "PdfFile",
    "strip_pdf_suffix",
]
