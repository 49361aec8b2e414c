"""Repository helpers for the pending-mutation outbox."""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_

from elibrary.db import store_session
from elibrary.db.models import PendingMutation


def enqueue(
    kind: str,
    namespace: str,
    target_id: str,
    *,
    document_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> PendingMutation:
    row = PendingMutation(
        kind=kind,
        namespace=namespace,
        target_id=target_id,
        document_id=document_id,
        payload=json.dumps(payload or {}, sort_keys=True),
        attempts=0,
    )
    with store_session() as session:
        session.add(row)
        session.flush()
        return row


def list_pending(namespace: str) -> List[PendingMutation]:
    with store_session() as session:
        return (
            session.query(PendingMutation)
            .filter(PendingMutation.namespace == namespace)
            .order_by(PendingMutation.id.asc())
            .all()
        )


def count_pending(namespace: str) -> int:
    with store_session() as session:
        return session.query(PendingMutation).filter(PendingMutation.namespace == namespace).count()


def find_for_target(namespace: str, target_id: str, kinds: Optional[Iterable[str]] = None) -> List[PendingMutation]:
    with store_session() as session:
        query = session.query(PendingMutation).filter(
            PendingMutation.namespace == namespace,
            PendingMutation.target_id == target_id,
        )
        if kinds is not None:
            query = query.filter(PendingMutation.kind.in_(list(kinds)))
        return query.order_by(PendingMutation.id.asc()).all()


def find_for_document(namespace: str, document_id: str) -> List[PendingMutation]:
    with store_session() as session:
        return (
            session.query(PendingMutation)
            .filter(
                PendingMutation.namespace == namespace,
                PendingMutation.document_id == document_id,
            )
            .order_by(PendingMutation.id.asc())
            .all()
        )


def delete_ids(ids: Iterable[int]) -> int:
    id_list = [int(i) for i in ids]
    if not id_list:
        return 0
    with store_session() as session:
        return (
            session.query(PendingMutation)
            .filter(PendingMutation.id.in_(id_list))
            .delete(synchronize_session=False)
        )


def update_payload(mutation_id: int, payload: Dict[str, Any]) -> None:
    with store_session() as session:
        row = session.get(PendingMutation, mutation_id)
        if row is not None:
            row.payload = json.dumps(payload, sort_keys=True)


def record_failure(mutation_id: int, error: str) -> int:
    """Increment the attempt counter; returns the new count (0 if gone)."""
    with store_session() as session:
        row = session.get(PendingMutation, mutation_id)
        if row is None:
            return 0
        row.attempts = (row.attempts or 0) + 1
        row.last_error = error[:1000]
        return row.attempts


def retarget(namespace: str, old_id: str, new_id: str, *, kinds: Iterable[str]) -> int:
    """Rewrite references after a local id was promoted to a remote id.

    ``target_id`` is rewritten for rows of the given kinds; ``document_id``
    is rewritten when the promoted record is a document.
    """
    kind_list = list(kinds)
    touches_documents = any(kind.endswith("_document") for kind in kind_list)
    with store_session() as session:
        rows = (
            session.query(PendingMutation)
            .filter(
                PendingMutation.namespace == namespace,
                or_(PendingMutation.target_id == old_id, PendingMutation.document_id == old_id),
            )
            .all()
        )
        changed = 0
        for row in rows:
            touched = False
            if row.target_id == old_id and row.kind in kind_list:
                row.target_id = new_id
                touched = True
            if touches_documents and row.document_id == old_id:
                row.document_id = new_id
                touched = True
            changed += int(touched)
        return changed


def decode_payload(row: PendingMutation) -> Dict[str, Any]:
    try:
        data = json.loads(row.payload or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = [
    "enqueue",
    "list_pending",
    "count_pending",
    "find_for_target",
    "find_for_document",
    "delete_ids",
    "update_payload",
    "record_failure",
    "retarget",
    "decode_payload",
]
