"""Typed wrappers for the E-Library REST resources.

Each group maps one-to-one onto backend routes and turns JSON payloads into
records. Failures propagate as ``NetworkError``/``RemoteError`` from the
HTTP client; a malformed success payload raises ``RemoteError`` with the
response status so callers treat it like any other backend failure.
"""
from __future__ import annotations

from typing import Any, List
from urllib.parse import quote

from elibrary.services.http_client import HttpClient, RemoteError
from elibrary.services.records import AuthResult, Document, Note, PdfFile, RecordFormatError, User


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _unwrap(data: Any, *keys: str) -> Any:
    """Accept both bare payloads and ``{"pdf": {...}}`` style envelopes."""
    if isinstance(data, dict):
        for key in keys:
            if key in data and isinstance(data[key], (dict, list)):
                return data[key]
    return data


class AuthAPI:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    def _auth_result(self, status: int, data: Any) -> AuthResult:
        if not isinstance(data, dict) or not isinstance(data.get("token"), str) or not data["token"]:
            raise RemoteError(status, "token_missing")
        try:
            user = User.from_payload(data.get("user"))
        except RecordFormatError as exc:
            raise RemoteError(status, str(exc)) from exc
        return AuthResult(token=data["token"], user=user)

    def login(self, email: str, password: str) -> AuthResult:
        resp = self.http.send("POST", "/auth/login", json={"email": email, "password": password})
        return self._auth_result(resp.status, resp.data)

    def register(self, username: str, email: str, password: str) -> AuthResult:
        resp = self.http.send(
            "POST",
            "/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        return self._auth_result(resp.status, resp.data)


class DocumentsAPI:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    def _document(self, status: int, data: Any) -> Document:
        try:
            return Document.from_payload(_unwrap(data, "pdf", "document"))
        except RecordFormatError as exc:
            raise RemoteError(status, str(exc)) from exc

    def list_all(self) -> List[Document]:
        resp = self.http.send("GET", "/pdf")
        items = _unwrap(resp.data, "pdfs", "documents")
        if not isinstance(items, list):
            raise RemoteError(resp.status, "document_list_invalid")
        return [self._document(resp.status, item) for item in items]

    def get_by_id(self, document_id: str) -> Document:
        resp = self.http.send("GET", f"/pdf/{_segment(document_id)}")
        return self._document(resp.status, resp.data)

    def upload(self, pdf: PdfFile) -> Document:
        resp = self.http.send(
            "POST",
            "/pdf/upload",
            files={"pdf": (pdf.name, pdf.data, pdf.content_type)},
        )
        return self._document(resp.status, resp.data)

    def delete(self, document_id: str) -> None:
        self.http.send("DELETE", f"/pdf/{_segment(document_id)}")


class NotesAPI:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    def _note(self, status: int, data: Any) -> Note:
        try:
            return Note.from_payload(_unwrap(data, "note"))
        except RecordFormatError as exc:
            raise RemoteError(status, str(exc)) from exc

    def list_by_document(self, document_id: str) -> List[Note]:
        resp = self.http.send("GET", f"/notes/{_segment(document_id)}")
        items = _unwrap(resp.data, "notes")
        if not isinstance(items, list):
            raise RemoteError(resp.status, "note_list_invalid")
        return [self._note(resp.status, item) for item in items]

    def create(self, document_id: str, content: str) -> Note:
        resp = self.http.send("POST", f"/notes/{_segment(document_id)}", json={"content": content})
        return self._note(resp.status, resp.data)

    def update(self, note_id: str, content: str) -> Note:
        resp = self.http.send("PUT", f"/notes/{_segment(note_id)}", json={"content": content})
        return self._note(resp.status, resp.data)

    def delete(self, note_id: str) -> None:
        self.http.send("DELETE", f"/notes/{_segment(note_id)}")


class ApiClient:
    """Aggregate of the three resource groups sharing one HTTP client."""

    def __init__(self, http: HttpClient) -> None:
        self.http = http
        self.auth = AuthAPI(http)
        self.documents = DocumentsAPI(http)
        self.notes = NotesAPI(http)


__all__ = ["AuthAPI", "DocumentsAPI", "NotesAPI", "ApiClient"]
