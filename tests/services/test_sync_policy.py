"""Sync policy behaviour against an offline or scripted backend."""
from __future__ import annotations

import pytest

from elibrary.db.repositories import outbox_repo
from elibrary.services.http_client import UnauthorizedError
from elibrary.services.records import PdfFile, SyncState
from elibrary.services.reconciler import CREATE_NOTE, DELETE_NOTE, UPLOAD_DOCUMENT
from elibrary.services.sync_policy import RecordNotFoundError
from elibrary.services.validation import ValidationError
from elibrary.utils.timestamps import epoch_millis

SEED_TITLES = [
    "Introduction to Machine Learning",
    "React Development Guide",
    "Database Design Principles",
]


def _pending_kinds(client):
    return [row.kind for row in outbox_repo.list_pending(client.store.namespace)]


def _mirror_user_document(client, document_id):
    client.store.append(
        client.store.documents_key,
        {
            "id": document_id,
            "title": f"Paper {document_id}",
            "filename": f"paper-{document_id}.pdf",
            "uploadDate": "2024-04-30T09:00:00.000Z",
            "userId": "u1",
            "syncState": "remote",
        },
    )
    return document_id


def test_offline_empty_store_lists_seed_documents_newest_first(client):
    docs = client.sync.list_documents()
    assert [d.title for d in docs] == SEED_TITLES
    assert all(d.sync_state == SyncState.DEMO for d in docs)


def test_seeding_is_idempotent_across_reads(client):
    client.sync.list_documents()
    client.sync.list_documents()
    assert len(client.store.read(client.store.documents_key)) == 3


def test_non_pdf_rejected_before_network(client, transport):
    with pytest.raises(ValidationError):
        client.sync.upload_document(PdfFile("notes.txt", "text/plain", b"hello"))
    assert transport.calls == []


def test_oversized_pdf_rejected_before_network(client, transport):
    big = PdfFile("big.pdf", "application/pdf", b"0" * (10 * 1024 * 1024 + 1))
    with pytest.raises(ValidationError):
        client.sync.upload_document(big)
    assert transport.calls == []


def test_exactly_ten_megabytes_is_accepted(client, transport):
    doc = client.sync.upload_document(PdfFile("edge.pdf", "application/pdf", b"0" * (10 * 1024 * 1024)))
    assert doc.sync_state == SyncState.LOCAL
    assert len(transport.calls) == 1


def test_offline_create_note_returns_local_note(client, clock):
    doc_id = _mirror_user_document(client, "srv-7")
    note = client.sync.create_note(doc_id, "  Remember chapter 4  ")

    assert note.id == str(epoch_millis(clock.now))
    assert note.content == "Remember chapter 4"
    assert note.document_id == doc_id
    assert note.created_at == note.updated_at
    assert note.sync_state == SyncState.LOCAL
    assert note.owner_id == "demo-user"

    listed = client.sync.list_notes(doc_id)
    assert any(n.id == note.id and n.content == "Remember chapter 4" for n in listed)
    assert _pending_kinds(client) == [CREATE_NOTE]


def test_offline_note_on_demo_document_is_never_replayed(client, transport, make_resp):
    note = client.sync.create_note("1", "just trying things out")

    assert note.sync_state == SyncState.DEMO
    assert any(n.id == note.id for n in client.sync.list_notes("1"))
    assert _pending_kinds(client) == []

    client.sync.update_note(note.id, "still trying")
    assert _pending_kinds(client) == []

    transport.handler = lambda method, url, **kw: make_resp(500, {"message": "unexpected call"})
    calls_before = len(transport.calls)
    report = client.sync.reconcile()
    assert report.replayed == 0
    assert transport.calls[calls_before:] == []


def test_offline_note_ids_are_unique_across_documents(client):
    doc_a = _mirror_user_document(client, "srv-7")
    doc_b = _mirror_user_document(client, "srv-8")
    keep = client.sync.create_note(doc_a, "keep me")
    gone = client.sync.create_note(doc_b, "delete me")

    assert keep.id != gone.id

    client.sync.update_note(gone.id, "delete me, edited")
    assert [n.content for n in client.sync.list_notes(doc_a) if n.id == keep.id] == ["keep me"]

    client.sync.delete_note(gone.id)

    assert keep.id in {n.id for n in client.sync.list_notes(doc_a)}
    assert gone.id not in {n.id for n in client.sync.list_notes(doc_b)}
    rows = outbox_repo.list_pending(client.store.namespace)
    assert [(r.kind, r.target_id, r.document_id) for r in rows] == [(CREATE_NOTE, keep.id, doc_a)]


def test_empty_note_content_is_rejected(client, transport):
    with pytest.raises(ValidationError):
        client.sync.create_note("1", "   ")
    assert transport.calls == []


def test_local_ids_stay_unique_within_same_millisecond(client):
    first = client.sync.create_note("1", "a")
    second = client.sync.create_note("1", "b")
    assert first.id != second.id
    assert int(second.id) == int(first.id) + 1


def test_offline_update_moves_updated_at_past_created_at(client):
    doc_id = _mirror_user_document(client, "srv-7")
    note = client.sync.create_note(doc_id, "draft")
    updated = client.sync.update_note(note.id, "final")

    assert updated.content == "final"
    assert updated.updated_at > updated.created_at
    assert [n.content for n in client.sync.list_notes(doc_id) if n.id == note.id] == ["final"]
    # edit folded into the pending create
    rows = outbox_repo.list_pending(client.store.namespace)
    assert [r.kind for r in rows] == [CREATE_NOTE]
    assert outbox_repo.decode_payload(rows[0]) == {"content": "final"}


def test_update_unknown_note_offline_raises(client):
    with pytest.raises(RecordNotFoundError):
        client.sync.update_note("nope", "text")


def test_delete_removes_exactly_one_note(client, clock):
    siblings_before = client.sync.list_notes("2")
    clock.advance(seconds=5)
    target = client.sync.create_note("2", "to be removed")

    client.sync.delete_note(target.id)

    after = client.sync.list_notes("2")
    assert target.id not in {n.id for n in after}
    assert [(n.id, n.content) for n in after] == [(n.id, n.content) for n in siblings_before]
    # never reached the backend, so nothing to replay
    assert _pending_kinds(client) == []


def test_deleting_seeded_note_offline_queues_nothing(client):
    seeded = client.sync.list_notes("3")[0]
    client.sync.delete_note(seeded.id)
    assert _pending_kinds(client) == []
    assert len(client.sync.list_notes("3")) == 1


def test_offline_upload_creates_local_document(client, clock):
    doc = client.sync.upload_document(PdfFile("Deep Learning.pdf", "application/pdf", b"%PDF-1.4 data"))

    assert doc.title == "Deep Learning"
    assert doc.filename == "Deep Learning.pdf"
    assert doc.upload_date == clock.now
    assert client.sync.list_documents()[0].id == doc.id
    assert client.store.consume_last_upload() == {"name": "Deep Learning.pdf", "size": 13}
    assert _pending_kinds(client) == [UPLOAD_DOCUMENT]


def test_deleting_local_only_document_discards_queued_work(client):
    doc = client.sync.upload_document(PdfFile("a.pdf", "application/pdf", b"%PDF"))
    client.sync.create_note(doc.id, "note on a local doc")

    client.sync.delete_document(doc.id)

    assert doc.id not in {d.id for d in client.sync.list_documents()}
    assert _pending_kinds(client) == []


def test_get_document_falls_back_to_local_then_placeholder(client):
    assert client.sync.get_document("2").title == "React Development Guide"
    placeholder = client.sync.get_document("404")
    assert placeholder.title == "Sample Document"
    assert placeholder.filename == "sample.pdf"


def test_search_matches_title_or_filename(client):
    assert [d.title for d in client.sync.search_documents("react")] == ["React Development Guide"]
    assert [d.title for d in client.sync.search_documents("DATABASE-design")] == ["Database Design Principles"]
    assert len(client.sync.search_documents("")) == 3


def _note_payload(note_id, content, pdf_id="1", stamp="2024-05-01T11:00:00.000Z"):
    return {
        "id": note_id,
        "content": content,
        "createdAt": stamp,
        "updatedAt": stamp,
        "pdfId": pdf_id,
        "userId": "u1",
    }


def test_online_create_writes_through_to_local_mirror(client, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(201, _note_payload("srv-1", kw["json"]["content"]))

    note = client.sync.create_note("1", "synced")

    assert note.id == "srv-1"
    assert note.sync_state == SyncState.REMOTE
    assert client.store.contains(client.store.notes_key("1"), "srv-1")
    assert _pending_kinds(client) == []


def test_online_read_does_not_touch_local_store(client, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(200, [_note_payload("srv-1", "remote")])

    notes = client.sync.list_notes("1")

    assert [n.id for n in notes] == ["srv-1"]
    assert not client.store.has(client.store.notes_key("1"))


def test_online_read_merges_pending_local_changes(client, transport, make_resp):
    doc_id = _mirror_user_document(client, "srv-7")
    local = client.sync.create_note(doc_id, "written offline")
    transport.handler = lambda method, url, **kw: make_resp(200, [_note_payload("srv-1", "remote", pdf_id=doc_id)])

    notes = client.sync.list_notes(doc_id)

    assert [n.id for n in notes] == [local.id, "srv-1"]


def test_online_read_hides_pending_deletes(client, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(200, [_note_payload("srv-1", "r1"), _note_payload("srv-2", "r2")])
    client.sync.list_notes("1")
    client.store.append(client.store.notes_key("1"), _note_payload("srv-2", "r2"))

    transport.handler = None
    client.sync.delete_note("srv-2")
    assert _pending_kinds(client) == [DELETE_NOTE]

    transport.handler = lambda method, url, **kw: make_resp(200, [_note_payload("srv-1", "r1"), _note_payload("srv-2", "r2")])
    assert [n.id for n in client.sync.list_notes("1")] == ["srv-1"]


def test_online_update_keeps_invariant_and_mirror(client, transport, make_resp):
    client.store.write(client.store.notes_key("1"), [_note_payload("srv-1", "old")])
    transport.handler = lambda method, url, **kw: make_resp(200, _note_payload("srv-1", kw["json"]["content"]))

    note = client.sync.update_note("srv-1", "new")

    assert note.updated_at > note.created_at
    assert client.store.find_note("srv-1")[1].content == "new"


def test_unauthorized_is_never_converted_to_local_success(client, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(401, {"message": "expired"})

    with pytest.raises(UnauthorizedError):
        client.sync.create_note("1", "should not be stored")

    assert not client.store.has(client.store.notes_key("1"))
    assert _pending_kinds(client) == []


def test_server_error_on_mutation_falls_back(client, transport, make_resp):
    doc_id = _mirror_user_document(client, "srv-7")
    transport.handler = lambda method, url, **kw: make_resp(503, {"message": "maintenance"})
    note = client.sync.create_note(doc_id, "queued")
    assert note.sync_state == SyncState.LOCAL
    assert _pending_kinds(client) == [CREATE_NOTE]
