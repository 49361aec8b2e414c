import pytest

from elibrary.services.api_client import ApiClient
from elibrary.services.http_client import HttpClient, RemoteError
from elibrary.services.records import PdfFile
from elibrary.services.token_store import TokenStore

BASE = "http://backend.test/api"


@pytest.fixture
def api():
    return ApiClient(HttpClient(TokenStore(), base_url=BASE))


def test_login_returns_token_and_user(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(
        200, {"token": "jwt-1", "user": {"_id": "u1", "username": "reader", "email": "reader@example.com"}}
    )
    result = api.auth.login("reader@example.com", "secret")

    assert result.token == "jwt-1"
    assert result.user.id == "u1"
    assert transport.calls[0]["url"] == f"{BASE}/auth/login"
    assert transport.calls[0]["json"] == {"email": "reader@example.com", "password": "secret"}


def test_register_without_token_is_a_remote_error(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(201, {"user": {"id": "u1"}})
    with pytest.raises(RemoteError) as excinfo:
        api.auth.register("reader", "reader@example.com", "secret")
    assert excinfo.value.message == "token_missing"
    assert transport.calls[0]["json"]["username"] == "reader"


def test_list_all_accepts_aliases_and_envelopes(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(
        200,
        {
            "pdfs": [
                {
                    "_id": "a1",
                    "title": "Paper",
                    "filename": "paper.pdf",
                    "uploadDate": "2024-04-01T10:00:00.000Z",
                    "ownerId": "u1",
                }
            ]
        },
    )
    docs = api.documents.list_all()

    assert len(docs) == 1
    assert docs[0].id == "a1"
    assert docs[0].owner_id == "u1"
    assert docs[0].upload_date.year == 2024


def test_list_all_rejects_non_list_payload(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(200, {"unexpected": True})
    with pytest.raises(RemoteError):
        api.documents.list_all()


def test_upload_sends_pdf_field(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(
        201, {"id": "d9", "title": "thesis", "filename": "thesis.pdf", "uploadDate": "2024-04-01T10:00:00Z", "userId": "u1"}
    )
    doc = api.documents.upload(PdfFile("thesis.pdf", "application/pdf", b"%PDF-1.7"))

    call = transport.calls[0]
    assert call["url"] == f"{BASE}/pdf/upload"
    assert call["files"]["pdf"] == ("thesis.pdf", b"%PDF-1.7", "application/pdf")
    assert doc.id == "d9"


def test_note_routes_and_bodies(api, transport, make_resp):
    note = {
        "id": "n1",
        "content": "hello",
        "createdAt": "2024-04-01T10:00:00.000Z",
        "updatedAt": "2024-04-01T10:00:00.000Z",
        "pdfId": "d/1",
        "userId": "u1",
    }
    transport.handler = lambda method, url, **kw: make_resp(200, note if method != "GET" else [note])

    api.notes.list_by_document("d/1")
    api.notes.create("d/1", "hello")
    api.notes.update("n1", "hello again")

    assert [c["method"] for c in transport.calls] == ["GET", "POST", "PUT"]
    assert transport.calls[0]["url"] == f"{BASE}/notes/d%2F1"
    assert transport.calls[1]["json"] == {"content": "hello"}
    assert transport.calls[2]["url"] == f"{BASE}/notes/n1"


def test_delete_accepts_no_content(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(204)
    api.documents.delete("d1")
    api.notes.delete("n1")
    assert [c["url"] for c in transport.calls] == [f"{BASE}/pdf/d1", f"{BASE}/notes/n1"]


def test_document_without_upload_date_is_rejected(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(
        200, {"id": "d1", "title": "Undated", "filename": "undated.pdf", "userId": "u1"}
    )
    with pytest.raises(RemoteError) as excinfo:
        api.documents.get_by_id("d1")
    assert excinfo.value.message == "document_upload_date_missing"


def test_note_without_created_at_is_rejected(api, transport, make_resp):
    transport.handler = lambda method, url, **kw: make_resp(200, [{"id": "n1", "content": "x", "pdfId": "d1"}])
    with pytest.raises(RemoteError) as excinfo:
        api.notes.list_by_document("d1")
    assert excinfo.value.message == "note_created_at_missing"
