"""Outbox replay: push locally persisted mutations to the backend.

Rows are replayed strictly in insertion order, always taking the head of the
queue so id promotions applied by earlier rows are visible to later ones.

Outcome per row:
    * success                -> row deleted, local ids promoted to remote ids
    * 404 on update/delete   -> row deleted (target already gone)
    * 404 on note create     -> row dropped (parent document gone)
    * NetworkError           -> pass stops, row kept untouched
    * other RemoteError      -> attempts incremented, pass stops; the row is
                                dropped once attempts reach ``max_attempts``
    * UnauthorizedError      -> propagates
"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional

from elibrary.db.models import PendingMutation
from elibrary.db.repositories import outbox_repo
from elibrary.services.api_client import ApiClient
from elibrary.services.http_client import NetworkError, RemoteError, UnauthorizedError
from elibrary.services.local_store import LocalFallbackStore
from elibrary.services.records import Document, Note, PdfFile, SyncState
from elibrary.utils.logging import get_logger

LOG = get_logger("reconciler")

UPLOAD_DOCUMENT = "upload_document"
DELETE_DOCUMENT = "delete_document"
CREATE_NOTE = "create_note"
UPDATE_NOTE = "update_note"
DELETE_NOTE = "delete_note"

DOCUMENT_KINDS = (UPLOAD_DOCUMENT, DELETE_DOCUMENT)
NOTE_KINDS = (CREATE_NOTE, UPDATE_NOTE, DELETE_NOTE)


@dataclass(frozen=True)
class ReconcileReport:
    replayed: int
    dropped: int
    remaining: int
    stopped_reason: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.remaining == 0


class _DropRow(Exception):
    """Internal: the row can never succeed and is discarded."""


class Reconciler:
    def __init__(self, api: ApiClient, store: LocalFallbackStore, *, max_attempts: int = 5) -> None:
        self.api = api
        self.store = store
        self.namespace = store.namespace
        self.max_attempts = max(1, max_attempts)

    def pending_count(self) -> int:
        return outbox_repo.count_pending(self.namespace)

    def run(self) -> ReconcileReport:
        replayed = dropped = 0
        stopped: Optional[str] = None
        while True:
            pending = outbox_repo.list_pending(self.namespace)
            if not pending:
                break
            row = pending[0]
            try:
                self._replay(row)
            except UnauthorizedError:
                raise
            except NetworkError as exc:
                LOG.info("Reconcile paused, backend unreachable: %s", exc)
                stopped = "network_error"
                break
            except _DropRow as exc:
                LOG.warning("Dropping pending %s target=%s: %s", row.kind, row.target_id, exc)
                outbox_repo.delete_ids([row.id])
                dropped += 1
                continue
            except RemoteError as exc:
                attempts = outbox_repo.record_failure(row.id, str(exc))
                if attempts >= self.max_attempts:
                    LOG.warning(
                        "Dropping pending %s target=%s after %s attempts: %s",
                        row.kind, row.target_id, attempts, exc,
                    )
                    outbox_repo.delete_ids([row.id])
                    dropped += 1
                    continue
                LOG.info("Reconcile paused at %s target=%s: %s", row.kind, row.target_id, exc)
                stopped = "remote_error"
                break
            outbox_repo.delete_ids([row.id])
            replayed += 1
        report = ReconcileReport(
            replayed=replayed,
            dropped=dropped,
            remaining=outbox_repo.count_pending(self.namespace),
            stopped_reason=stopped,
        )
        if replayed or dropped:
            LOG.info(
                "Reconcile replayed=%s dropped=%s remaining=%s",
                report.replayed, report.dropped, report.remaining,
            )
        return report

    # -- per-kind replay ----------------------------------------------------

    def _replay(self, row: PendingMutation) -> None:
        payload = outbox_repo.decode_payload(row)
        if row.kind == UPLOAD_DOCUMENT:
            self._replay_upload(row, payload)
        elif row.kind == DELETE_DOCUMENT:
            self._ignore_missing(lambda: self.api.documents.delete(row.target_id))
        elif row.kind == CREATE_NOTE:
            self._replay_create_note(row, payload)
        elif row.kind == UPDATE_NOTE:
            self._replay_update_note(row, payload)
        elif row.kind == DELETE_NOTE:
            self._ignore_missing(lambda: self.api.notes.delete(row.target_id))
        else:
            raise _DropRow(f"unknown_kind:{row.kind}")

    @staticmethod
    def _ignore_missing(call) -> None:
        try:
            call()
        except UnauthorizedError:
            raise
        except RemoteError as exc:
            if exc.status != 404:
                raise
            LOG.debug("Target already gone remotely: %s", exc)

    def _replay_upload(self, row: PendingMutation, payload: dict) -> None:
        try:
            data = base64.b64decode(payload.get("data") or "", validate=True)
        except ValueError as exc:
            raise _DropRow("file_data_invalid") from exc
        if not data:
            raise _DropRow("file_data_missing")
        pdf = PdfFile(
            name=str(payload.get("name") or "document.pdf"),
            content_type=str(payload.get("contentType") or "application/pdf"),
            data=data,
        )
        remote = self.api.documents.upload(pdf)
        self.promote_document(row.target_id, remote)

    def _replay_create_note(self, row: PendingMutation, payload: dict) -> None:
        document_id = row.document_id or ""
        content = payload.get("content")
        if not document_id or not isinstance(content, str) or not content:
            raise _DropRow("note_payload_invalid")
        try:
            remote = self.api.notes.create(document_id, content)
        except UnauthorizedError:
            raise
        except RemoteError as exc:
            if exc.status == 404:
                raise _DropRow("document_missing") from exc
            raise
        self.promote_note(row.target_id, document_id, remote)

    def _replay_update_note(self, row: PendingMutation, payload: dict) -> None:
        content = payload.get("content")
        if not isinstance(content, str) or not content:
            raise _DropRow("note_payload_invalid")
        try:
            remote = self.api.notes.update(row.target_id, content)
        except UnauthorizedError:
            raise
        except RemoteError as exc:
            if exc.status == 404:
                LOG.debug("Note %s gone remotely; update discarded", row.target_id)
                return
            raise
        if row.document_id:
            self._mirror_note(row.target_id, row.document_id, remote)

    # -- id promotion -------------------------------------------------------

    def promote_document(self, local_id: str, remote: Document) -> None:
        promoted = remote.with_state(SyncState.REMOTE)
        docs_key = self.store.documents_key
        if not self.store.replace_by_id(docs_key, local_id, promoted.to_payload()):
            self.store.append(docs_key, promoted.to_payload())
        if local_id != remote.id:
            old_key = self.store.notes_key(local_id)
            new_key = self.store.notes_key(remote.id)
            self.store.rename(old_key, new_key)
            if self.store.has(new_key):
                rewritten = [dict(item, pdfId=remote.id) for item in self.store.read(new_key)]
                self.store.write(new_key, rewritten)
            outbox_repo.retarget(self.namespace, local_id, remote.id, kinds=DOCUMENT_KINDS)
        LOG.info("Promoted local document %s -> %s", local_id, remote.id)

    def promote_note(self, local_id: str, document_id: str, remote: Note) -> None:
        self._mirror_note(local_id, document_id, remote)
        if local_id != remote.id:
            outbox_repo.retarget(self.namespace, local_id, remote.id, kinds=NOTE_KINDS)
        LOG.info("Promoted local note %s -> %s", local_id, remote.id)

    def _mirror_note(self, local_id: str, document_id: str, remote: Note) -> None:
        payload = remote.with_state(SyncState.REMOTE).to_payload()
        if not payload.get("pdfId"):
            payload["pdfId"] = document_id
        key = self.store.notes_key(document_id)
        if not self.store.replace_by_id(key, local_id, payload):
            self.store.append(key, payload)


__all__ = [
    "Reconciler",
    "ReconcileReport",
    "UPLOAD_DOCUMENT",
    "DELETE_DOCUMENT",
    "CREATE_NOTE",
    "UPDATE_NOTE",
    "DELETE_NOTE",
    "DOCUMENT_KINDS",
    "NOTE_KINDS",
]
