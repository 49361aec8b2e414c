"""End-to-end run of the client against the QA mock backend over real HTTP."""
from __future__ import annotations

import importlib.util
import threading
from pathlib import Path

import pytest

from elibrary.services.http_client import UnauthorizedError
from elibrary.services.records import PdfFile, SyncState
from elibrary.services.seed_provider import NoSeedProvider
from elibrary.startup.wiring import build_client

MOCK_PATH = Path(__file__).resolve().parents[2] / ".github" / "qa" / "elibrary_mock" / "server.py"


def _load_mock():
    spec = importlib.util.spec_from_file_location("elibrary_mock_server", MOCK_PATH)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def mock_backend(monkeypatch):
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
    module = _load_mock()
    server = module.make_server("127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield module, f"http://127.0.0.1:{server.server_address[1]}/api"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def test_full_session_against_mock_backend(mock_backend):
    mock, api_url = mock_backend
    client = build_client(base_url=api_url, seed_provider=NoSeedProvider())

    result = client.session.register("reader", "Reader@Example.com", "secret")
    assert result.user.email == "reader@example.com"
    assert client.session.is_authenticated

    doc = client.sync.upload_document(PdfFile("Lecture 1.pdf", "application/pdf", b"%PDF-1.4 lecture"))
    assert doc.sync_state == SyncState.REMOTE
    assert doc.title == "Lecture 1"
    assert [d.id for d in client.sync.list_documents()] == [doc.id]

    first = client.sync.create_note(doc.id, "first thought")
    edited = client.sync.update_note(first.id, "first thought, edited")
    assert edited.updated_at > edited.created_at
    assert [n.content for n in client.sync.list_notes(doc.id)] == ["first thought, edited"]

    # backend hiccup: the note is kept locally and queued
    mock.STATE.fail_next.append(503)
    offline = client.sync.create_note(doc.id, "written during outage")
    assert offline.sync_state == SyncState.LOCAL
    assert client.sync.pending_count() == 1
    assert {n.id for n in client.sync.list_notes(doc.id)} == {first.id, offline.id}

    report = client.sync.reconcile()
    assert report.replayed == 1
    assert report.complete
    remote_notes = client.sync.list_notes(doc.id)
    assert {n.content for n in remote_notes} == {"first thought, edited", "written during outage"}
    assert all(n.sync_state == SyncState.REMOTE for n in remote_notes)

    client.sync.delete_note(first.id)
    assert [n.content for n in client.sync.list_notes(doc.id)] == ["written during outage"]

    client.logout()
    with pytest.raises(UnauthorizedError):
        client.sync.list_documents()


def test_login_with_unknown_user_is_rejected(mock_backend):
    from elibrary.services.http_client import RemoteError

    _, api_url = mock_backend
    client = build_client(base_url=api_url, seed_provider=NoSeedProvider())

    with pytest.raises(RemoteError) as excinfo:
        client.session.login("nobody@example.com", "secret")
    assert excinfo.value.status == 400
    assert client.session.token is None
