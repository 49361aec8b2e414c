#!/usr/bin/env python3
"""Minimal E-Library REST API mock for local QA.

Implements the endpoints consumed by the elibrary client:
- POST   /api/auth/login
- POST   /api/auth/register
- GET    /api/pdf
- GET    /api/pdf/<id>
- POST   /api/pdf/upload          (multipart, field "pdf")
- DELETE /api/pdf/<id>
- GET    /api/notes/<pdfId>
- POST   /api/notes/<pdfId>
- PUT    /api/notes/<id>
- DELETE /api/notes/<id>

State is in memory only; any password is accepted for registered users.
Intentionally tiny and dependency-free (stdlib only).
"""

from __future__ import annotations

import itertools
import json
import os
import re
import threading
from datetime import datetime, timezone
from email import policy
from email.parser import BytesParser
from http.server import BaseHTTPRequestHandler, HTTPServer, ThreadingHTTPServer
from urllib.parse import urlparse


def _now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _json_response(handler: BaseHTTPRequestHandler, status: int, payload) -> None:
    if status == 204:
        handler.send_response(204)
        handler.send_header("Content-Length", "0")
        handler.end_headers()
        return
    body = json.dumps(payload).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _read_body(handler: BaseHTTPRequestHandler) -> bytes:
    length = int(handler.headers.get("Content-Length", "0") or "0")
    return handler.rfile.read(length) if length else b""


def _read_json(handler: BaseHTTPRequestHandler) -> dict:
    raw = _read_body(handler)
    if not raw:
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def _read_multipart_file(handler: BaseHTTPRequestHandler, field: str):
    ctype = handler.headers.get("Content-Type") or ""
    raw = _read_body(handler)
    if "multipart/form-data" not in ctype or not raw:
        return None
    message = BytesParser(policy=policy.default).parsebytes(
        b"Content-Type: " + ctype.encode("latin-1") + b"\r\n\r\n" + raw
    )
    if not message.is_multipart():
        return None
    for part in message.iter_parts():
        if part.get_param("name", header="content-disposition") == field:
            return {
                "filename": part.get_filename() or "document.pdf",
                "content_type": part.get_content_type(),
                "size": len(part.get_payload(decode=True) or b""),
            }
    return None


class _State:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.ids = itertools.count(1000)
        self.users: dict[str, dict] = {}
        self.tokens: dict[str, dict] = {}
        self.pdfs: dict[str, dict] = {}
        self.notes: dict[str, dict] = {}
        self.fail_next: list[int] = []

    def next_id(self) -> str:
        return f"srv-{next(self.ids)}"

    def issue(self, user: dict) -> dict:
        token = f"mock-token-{next(self.ids)}"
        self.tokens[token] = user
        return {"token": token, "user": user}


STATE = _State()


class Handler(BaseHTTPRequestHandler):
    server_version = "elibrary-mock/0.1"

    def log_message(self, fmt: str, *args):
        # Keep QA output quieter.
        if os.getenv("ELIBRARY_MOCK_VERBOSE") == "1":
            super().log_message(fmt, *args)

    def _user(self):
        auth = self.headers.get("Authorization") or ""
        if not auth.startswith("Bearer "):
            return None
        with STATE.lock:
            return STATE.tokens.get(auth[len("Bearer "):].strip())

    def _forced_failure(self) -> bool:
        with STATE.lock:
            status = STATE.fail_next.pop(0) if STATE.fail_next else None
        if status is None:
            return False
        _json_response(self, status, {"message": "forced_failure"})
        return True

    def _path(self) -> str:
        return urlparse(self.path).path.rstrip("/")

    def do_GET(self):
        if self._forced_failure():
            return None
        user = self._user()
        if user is None:
            return _json_response(self, 401, {"message": "unauthorized"})
        path = self._path()

        if path == "/api/pdf":
            with STATE.lock:
                items = [p for p in STATE.pdfs.values() if p["userId"] == user["id"]]
            items.sort(key=lambda p: p["uploadDate"], reverse=True)
            return _json_response(self, 200, items)

        m = re.fullmatch(r"/api/pdf/([^/]+)", path)
        if m:
            with STATE.lock:
                pdf = STATE.pdfs.get(m.group(1))
            if not pdf or pdf["userId"] != user["id"]:
                return _json_response(self, 404, {"message": "PDF not found"})
            return _json_response(self, 200, pdf)

        m = re.fullmatch(r"/api/notes/([^/]+)", path)
        if m:
            with STATE.lock:
                items = [n for n in STATE.notes.values() if n["pdfId"] == m.group(1) and n["userId"] == user["id"]]
            items.sort(key=lambda n: n["createdAt"], reverse=True)
            return _json_response(self, 200, items)

        return _json_response(self, 404, {"message": "not_found"})

    def do_POST(self):
        if self._forced_failure():
            return None
        path = self._path()

        if path == "/api/auth/register":
            body = _read_json(self)
            email = (body.get("email") or "").strip().lower()
            username = (body.get("username") or "").strip()
            if not email or not username or not body.get("password"):
                return _json_response(self, 400, {"message": "username, email and password are required"})
            with STATE.lock:
                if email in STATE.users:
                    return _json_response(self, 400, {"message": "User already exists"})
                user = {"id": STATE.next_id(), "username": username, "email": email}
                STATE.users[email] = user
                return _json_response(self, 201, STATE.issue(user))

        if path == "/api/auth/login":
            body = _read_json(self)
            email = (body.get("email") or "").strip().lower()
            with STATE.lock:
                user = STATE.users.get(email)
                if not user or not body.get("password"):
                    return _json_response(self, 400, {"message": "Invalid credentials"})
                return _json_response(self, 200, STATE.issue(user))

        user = self._user()
        if user is None:
            return _json_response(self, 401, {"message": "unauthorized"})

        if path == "/api/pdf/upload":
            upload = _read_multipart_file(self, "pdf")
            if upload is None:
                return _json_response(self, 400, {"message": "No file uploaded"})
            if upload["content_type"] != "application/pdf":
                return _json_response(self, 400, {"message": "Only PDF files are allowed"})
            filename = upload["filename"]
            title = filename[:-4] if filename.lower().endswith(".pdf") else filename
            with STATE.lock:
                pdf = {
                    "id": STATE.next_id(),
                    "title": title,
                    "filename": filename,
                    "uploadDate": _now(),
                    "userId": user["id"],
                }
                STATE.pdfs[pdf["id"]] = pdf
            return _json_response(self, 201, pdf)

        m = re.fullmatch(r"/api/notes/([^/]+)", path)
        if m:
            body = _read_json(self)
            content = (body.get("content") or "").strip()
            if not content:
                return _json_response(self, 400, {"message": "Content is required"})
            with STATE.lock:
                if m.group(1) not in STATE.pdfs:
                    return _json_response(self, 404, {"message": "PDF not found"})
                stamp = _now()
                note = {
                    "id": STATE.next_id(),
                    "content": content,
                    "createdAt": stamp,
                    "updatedAt": stamp,
                    "pdfId": m.group(1),
                    "userId": user["id"],
                }
                STATE.notes[note["id"]] = note
            return _json_response(self, 201, note)

        return _json_response(self, 404, {"message": "not_found"})

    def do_PUT(self):
        if self._forced_failure():
            return None
        user = self._user()
        if user is None:
            return _json_response(self, 401, {"message": "unauthorized"})
        m = re.fullmatch(r"/api/notes/([^/]+)", self._path())
        if not m:
            return _json_response(self, 404, {"message": "not_found"})
        body = _read_json(self)
        content = (body.get("content") or "").strip()
        if not content:
            return _json_response(self, 400, {"message": "Content is required"})
        with STATE.lock:
            note = STATE.notes.get(m.group(1))
            if not note or note["userId"] != user["id"]:
                return _json_response(self, 404, {"message": "Note not found"})
            note["content"] = content
            note["updatedAt"] = _now()
            payload = dict(note)
        return _json_response(self, 200, payload)

    def do_DELETE(self):
        if self._forced_failure():
            return None
        user = self._user()
        if user is None:
            return _json_response(self, 401, {"message": "unauthorized"})
        path = self._path()

        m = re.fullmatch(r"/api/pdf/([^/]+)", path)
        if m:
            with STATE.lock:
                pdf = STATE.pdfs.get(m.group(1))
                if not pdf or pdf["userId"] != user["id"]:
                    return _json_response(self, 404, {"message": "PDF not found"})
                del STATE.pdfs[m.group(1)]
            return _json_response(self, 204, None)

        m = re.fullmatch(r"/api/notes/([^/]+)", path)
        if m:
            with STATE.lock:
                note = STATE.notes.get(m.group(1))
                if not note or note["userId"] != user["id"]:
                    return _json_response(self, 404, {"message": "Note not found"})
                del STATE.notes[m.group(1)]
            return _json_response(self, 204, None)

        return _json_response(self, 404, {"message": "not_found"})


def make_server(host: str = "127.0.0.1", port: int = 0) -> HTTPServer:
    return ThreadingHTTPServer((host, port), Handler)


def main() -> int:
    host = os.getenv("ELIBRARY_MOCK_HOST", "0.0.0.0")
    port = int(os.getenv("ELIBRARY_MOCK_PORT", "5000"))
    httpd = make_server(host, port)
    print(f"[elibrary-mock] listening on http://{host}:{port}/api")
    httpd.serve_forever()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
