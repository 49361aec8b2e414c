"""Synchronization policy between the backend and the local fallback store.

Every operation tries the backend first. On success the result is returned
(mutations are also mirrored locally). On ``NetworkError`` or a non-401
``RemoteError`` the same logical operation is applied to the local store,
recorded in the outbox for later replay, and its local result is returned as
if the backend had accepted it. ``UnauthorizedError`` is never converted:
the HTTP client has already evicted the session and callers must sign in.
"""
from __future__ import annotations

import base64
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set

from elibrary.db.repositories import outbox_repo
from elibrary.services.api_client import ApiClient
from elibrary.services.http_client import NetworkError, RemoteError, UnauthorizedError
from elibrary.services.local_store import LocalFallbackStore
from elibrary.services.reconciler import (
    CREATE_NOTE,
    DELETE_DOCUMENT,
    DELETE_NOTE,
    UPDATE_NOTE,
    UPLOAD_DOCUMENT,
    ReconcileReport,
    Reconciler,
)
from elibrary.services.records import Document, Note, PdfFile, SyncState, strip_pdf_suffix
from elibrary.services.seed_provider import DEMO_OWNER_ID
from elibrary.services.session import Session
from elibrary.services.validation import normalize_note_content, require_id, validate_pdf_upload
from elibrary.utils.logging import get_logger
from elibrary.utils.timestamps import ONE_MILLISECOND, epoch_millis, utcnow

LOG = get_logger("sync_policy")

_FALLBACK_ERRORS = (NetworkError, RemoteError)


class RecordNotFoundError(LookupError):
    """Raised when a local fallback targets a record that is not mirrored."""


def _newest_documents(docs: Iterable[Document]) -> List[Document]:
    return sorted(docs, key=lambda d: d.upload_date, reverse=True)


def _newest_notes(notes: Iterable[Note]) -> List[Note]:
    return sorted(notes, key=lambda n: n.created_at, reverse=True)


def _bump_updated(note: Note) -> Note:
    if note.updated_at > note.created_at:
        return note
    return replace(note, updated_at=note.created_at + ONE_MILLISECOND)


class SyncPolicy:
    def __init__(
        self,
        api: ApiClient,
        store: LocalFallbackStore,
        session: Optional[Session] = None,
        *,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.api = api
        self.store = store
        self.session = session
        self.clock = clock
        self.namespace = store.namespace
        self.reconciler = Reconciler(api, store, max_attempts=max_attempts)

    # -- helpers ------------------------------------------------------------

    def _owner_id(self) -> str:
        owner = self.session.owner_id if self.session is not None else None
        return owner or DEMO_OWNER_ID

    def _new_local_id(self, taken: Set[str]) -> str:
        candidate = epoch_millis(self.clock())
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def _ids(self, key: str) -> Set[str]:
        return {str(item.get("id")) for item in self.store.read(key)}

    def _note_ids(self, key: str) -> Set[str]:
        # note ids must be unique store-wide: update/delete look notes up by id alone
        taken = self._ids(key) | self.store.note_ids()
        taken.update(row.target_id for row in self._pending((CREATE_NOTE, UPDATE_NOTE, DELETE_NOTE)))
        return taken

    def _is_demo_document(self, document_id: str) -> bool:
        return any(d.id == document_id and d.sync_state == SyncState.DEMO for d in self.store.read_documents())

    def _pending(self, kinds: Iterable[str]) -> List:
        wanted = set(kinds)
        return [row for row in outbox_repo.list_pending(self.namespace) if row.kind in wanted]

    @staticmethod
    def _fallback_log(operation: str, exc: Exception) -> None:
        LOG.warning("%s fell back to local store: %s", operation, exc)

    # -- documents ----------------------------------------------------------

    def list_documents(self) -> List[Document]:
        try:
            remote = self.api.documents.list_all()
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("list_documents", exc)
            return _newest_documents(self.store.read_documents())
        return _newest_documents(self._merge_pending_documents(remote))

    def _merge_pending_documents(self, remote: List[Document]) -> List[Document]:
        pending = self._pending((UPLOAD_DOCUMENT, DELETE_DOCUMENT))
        if not pending:
            return remote
        deleted = {row.target_id for row in pending if row.kind == DELETE_DOCUMENT}
        uploads = {row.target_id for row in pending if row.kind == UPLOAD_DOCUMENT}
        merged = [doc for doc in remote if doc.id not in deleted]
        seen = {doc.id for doc in merged}
        for doc in self.store.read_documents():
            if doc.id in uploads and doc.id not in seen:
                merged.append(doc)
        return merged

    def search_documents(self, query: str) -> List[Document]:
        needle = (query or "").strip().lower()
        docs = self.list_documents()
        if not needle:
            return docs
        return [d for d in docs if needle in d.title.lower() or needle in d.filename.lower()]

    def get_document(self, document_id: str) -> Document:
        document_id = require_id(document_id, "document_id")
        try:
            return self.api.documents.get_by_id(document_id)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("get_document", exc)
        for doc in self.store.read_documents():
            if doc.id == document_id:
                return doc
        return Document(
            id=document_id,
            title="Sample Document",
            filename="sample.pdf",
            upload_date=self.clock(),
            owner_id=DEMO_OWNER_ID,
            sync_state=SyncState.DEMO,
        )

    def upload_document(self, pdf: PdfFile) -> Document:
        validate_pdf_upload(pdf)
        key = self.store.documents_key
        try:
            doc = self.api.documents.upload(pdf)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("upload_document", exc)
            doc = Document(
                id=self._new_local_id(self._ids(key)),
                title=strip_pdf_suffix(pdf.name) or "Uploaded Document",
                filename=pdf.name or "document.pdf",
                upload_date=self.clock(),
                owner_id=self._owner_id(),
                sync_state=SyncState.LOCAL,
            )
            self.store.append(key, doc.to_payload())
            outbox_repo.enqueue(
                UPLOAD_DOCUMENT,
                self.namespace,
                doc.id,
                document_id=doc.id,
                payload={
                    "name": pdf.name,
                    "contentType": pdf.content_type,
                    "data": base64.b64encode(pdf.data).decode("ascii"),
                },
            )
        else:
            self.store.append(key, doc.to_payload())
        self.store.put_last_upload(pdf.name, pdf.size)
        LOG.info("Uploaded %s as document %s (%s)", pdf.name, doc.id, doc.sync_state.value)
        return doc

    def delete_document(self, document_id: str) -> None:
        document_id = require_id(document_id, "document_id")
        key = self.store.documents_key
        try:
            self.api.documents.delete(document_id)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("delete_document", exc)
        else:
            self.store.remove_by_id(key, document_id)
            LOG.info("Deleted document %s", document_id)
            return

        local = next((d for d in self.store.read_documents() if d.id == document_id), None)
        self.store.remove_by_id(key, document_id)
        pending_upload = outbox_repo.find_for_target(self.namespace, document_id, kinds=(UPLOAD_DOCUMENT,))
        if pending_upload:
            # never reached the backend: discard the upload and its queued note work
            related = outbox_repo.find_for_document(self.namespace, document_id)
            outbox_repo.delete_ids({row.id for row in pending_upload} | {row.id for row in related})
        elif local is None or local.sync_state != SyncState.DEMO:
            outbox_repo.enqueue(DELETE_DOCUMENT, self.namespace, document_id, document_id=document_id)
        LOG.info("Deleted document %s locally", document_id)

    # -- notes --------------------------------------------------------------

    def list_notes(self, document_id: str) -> List[Note]:
        document_id = require_id(document_id, "document_id")
        try:
            remote = self.api.notes.list_by_document(document_id)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("list_notes", exc)
            return _newest_notes(self.store.read_notes(document_id))
        return _newest_notes(self._merge_pending_notes(document_id, remote))

    def _merge_pending_notes(self, document_id: str, remote: List[Note]) -> List[Note]:
        pending = [
            row for row in outbox_repo.find_for_document(self.namespace, document_id)
            if row.kind in (CREATE_NOTE, UPDATE_NOTE, DELETE_NOTE)
        ]
        if not pending:
            return remote
        deleted = {row.target_id for row in pending if row.kind == DELETE_NOTE}
        touched = {row.target_id for row in pending if row.kind in (CREATE_NOTE, UPDATE_NOTE)}
        local = {n.id: n for n in self.store.read_notes(document_id) if n.id in touched}
        merged = [local.pop(n.id, n) for n in remote if n.id not in deleted]
        merged.extend(local.values())
        return merged

    def create_note(self, document_id: str, content: str) -> Note:
        document_id = require_id(document_id, "document_id")
        content = normalize_note_content(content)
        key = self.store.notes_key(document_id)
        try:
            note = self.api.notes.create(document_id, content)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("create_note", exc)
            now = self.clock()
            demo = self._is_demo_document(document_id)
            note = Note(
                id=self._new_local_id(self._note_ids(key)),
                content=content,
                created_at=now,
                updated_at=now,
                document_id=document_id,
                owner_id=self._owner_id(),
                sync_state=SyncState.DEMO if demo else SyncState.LOCAL,
            )
            self.store.append(key, note.to_payload())
            if demo:
                # demo documents have no backend counterpart; the note stays local
                return note
            outbox_repo.enqueue(
                CREATE_NOTE, self.namespace, note.id, document_id=document_id, payload={"content": content}
            )
            return note
        if not note.document_id:
            note = replace(note, document_id=document_id)
        self.store.append(key, note.to_payload())
        return note

    def update_note(self, note_id: str, content: str) -> Note:
        note_id = require_id(note_id, "note_id")
        content = normalize_note_content(content)
        located = self.store.find_note(note_id)
        try:
            note = self.api.notes.update(note_id, content)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("update_note", exc)
        else:
            note = _bump_updated(note)
            if located is not None:
                key, previous = located
                if not note.document_id:
                    note = replace(note, document_id=previous.document_id)
                self.store.replace_by_id(key, note_id, note.to_payload())
            return note

        if located is None:
            raise RecordNotFoundError("note_not_found")
        key, previous = located
        note = _bump_updated(
            replace(
                previous,
                content=content,
                updated_at=self.clock(),
                sync_state=previous.sync_state if previous.sync_state != SyncState.REMOTE else SyncState.LOCAL,
            )
        )
        self.store.replace_by_id(key, note_id, note.to_payload())
        self._queue_note_update(note)
        return note

    def _queue_note_update(self, note: Note) -> None:
        if note.sync_state == SyncState.DEMO:
            return
        queued = outbox_repo.find_for_target(self.namespace, note.id, kinds=(CREATE_NOTE, UPDATE_NOTE))
        if queued:
            # fold the edit into the newest pending create/update
            outbox_repo.update_payload(queued[-1].id, {"content": note.content})
            return
        outbox_repo.enqueue(
            UPDATE_NOTE, self.namespace, note.id, document_id=note.document_id, payload={"content": note.content}
        )

    def delete_note(self, note_id: str) -> None:
        note_id = require_id(note_id, "note_id")
        located = self.store.find_note(note_id)
        try:
            self.api.notes.delete(note_id)
        except UnauthorizedError:
            raise
        except _FALLBACK_ERRORS as exc:
            self._fallback_log("delete_note", exc)
        else:
            if located is not None:
                self.store.remove_by_id(located[0], note_id)
            LOG.info("Deleted note %s", note_id)
            return

        document_id = None
        demo = False
        if located is not None:
            key, previous = located
            self.store.remove_by_id(key, note_id)
            document_id = previous.document_id
            demo = previous.sync_state == SyncState.DEMO
        queued = outbox_repo.find_for_target(self.namespace, note_id, kinds=(CREATE_NOTE, UPDATE_NOTE))
        outbox_repo.delete_ids(row.id for row in queued)
        if demo or any(row.kind == CREATE_NOTE for row in queued):
            LOG.info("Deleted local-only note %s", note_id)
            return
        outbox_repo.enqueue(DELETE_NOTE, self.namespace, note_id, document_id=document_id)
        LOG.info("Deleted note %s locally", note_id)

    # -- reconciliation -----------------------------------------------------

    def pending_count(self) -> int:
        return self.reconciler.pending_count()

    def reconcile(self) -> ReconcileReport:
        return self.reconciler.run()


__all__ = ["SyncPolicy", "RecordNotFoundError"]
