"""Command line front end for the E-Library client.

Examples:
    elibrary login reader@example.com
    elibrary upload ./paper.pdf
    elibrary list --search learning
    elibrary notes add 1 "Re-read section 3"
    elibrary sync
"""
from __future__ import annotations

import argparse
import getpass
import json
import sys
import traceback
from typing import Any, Dict, List, Optional

from elibrary import config as app_config
from elibrary.services.http_client import ElibraryError, UnauthorizedError
from elibrary.services.records import Document, Note, PdfFile
from elibrary.services.sync_policy import RecordNotFoundError
from elibrary.services.validation import ValidationError
from elibrary.startup.wiring import ElibraryClient, build_client
from elibrary.utils.timestamps import format_timestamp

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 2
EXIT_UNAUTHORIZED = 3


def _emit(args: argparse.Namespace, payload: Any, human: str) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(human)


def _document_line(doc: Document) -> str:
    marker = "" if doc.sync_state.value == "remote" else f" [{doc.sync_state.value}]"
    return f"{doc.id:>14}  {doc.title}  ({doc.filename}, {format_timestamp(doc.upload_date)}){marker}"


def _note_block(note: Note) -> str:
    stamp = (
        f"Updated {format_timestamp(note.updated_at)}"
        if note.edited
        else f"Created {format_timestamp(note.created_at)}"
    )
    marker = "" if note.sync_state.value == "remote" else f" [{note.sync_state.value}]"
    return f"- {note.id}  {stamp}{marker}\n  {note.content}"


def _password(args: argparse.Namespace) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_login(client: ElibraryClient, args: argparse.Namespace) -> int:
    result = client.session.login(args.email, _password(args))
    _emit(args, {"user": result.user.to_payload()}, f"Signed in as {result.user.username} <{result.user.email}>")
    return EXIT_OK


def cmd_register(client: ElibraryClient, args: argparse.Namespace) -> int:
    result = client.session.register(args.username, args.email, _password(args))
    _emit(args, {"user": result.user.to_payload()}, f"Registered {result.user.username} <{result.user.email}>")
    return EXIT_OK


def cmd_logout(client: ElibraryClient, args: argparse.Namespace) -> int:
    client.logout()
    _emit(args, {"status": "signed_out"}, "Signed out.")
    return EXIT_OK


def cmd_whoami(client: ElibraryClient, args: argparse.Namespace) -> int:
    user = client.session.user
    if user is None:
        _emit(args, {"user": None}, "Not signed in.")
        return EXIT_UNAUTHORIZED
    _emit(args, {"user": user.to_payload()}, f"{user.username} <{user.email}> (id {user.id})")
    return EXIT_OK


def cmd_list(client: ElibraryClient, args: argparse.Namespace) -> int:
    docs = client.sync.search_documents(args.search) if args.search else client.sync.list_documents()
    suffix = "" if len(docs) == 1 else "s"
    lines = [f"{len(docs)} document{suffix}"] + [_document_line(d) for d in docs]
    _emit(args, {"documents": [d.to_payload() for d in docs]}, "\n".join(lines))
    return EXIT_OK


def cmd_show(client: ElibraryClient, args: argparse.Namespace) -> int:
    doc = client.sync.get_document(args.document_id)
    _emit(args, {"document": doc.to_payload()}, _document_line(doc))
    return EXIT_OK


def cmd_upload(client: ElibraryClient, args: argparse.Namespace) -> int:
    try:
        pdf = PdfFile.from_path(args.path)
    except OSError as exc:
        raise ValidationError(f"file_unreadable: {exc.strerror or exc}") from exc
    doc = client.sync.upload_document(pdf)
    last = client.store.consume_last_upload() or {"name": pdf.name, "size": pdf.size}
    size_mb = (last.get("size") or 0) / 1024 / 1024
    _emit(
        args,
        {"document": doc.to_payload(), "upload": last},
        f"{last.get('name')} ({size_mb:.2f} MB) has been added to your library as {doc.id}",
    )
    return EXIT_OK


def cmd_delete(client: ElibraryClient, args: argparse.Namespace) -> int:
    client.sync.delete_document(args.document_id)
    _emit(args, {"deleted": args.document_id}, "The document has been removed from your library")
    return EXIT_OK


def cmd_notes_list(client: ElibraryClient, args: argparse.Namespace) -> int:
    notes = client.sync.list_notes(args.document_id)
    human = "\n".join(_note_block(n) for n in notes) if notes else "No notes yet"
    _emit(args, {"notes": [n.to_payload() for n in notes]}, human)
    return EXIT_OK


def cmd_notes_add(client: ElibraryClient, args: argparse.Namespace) -> int:
    note = client.sync.create_note(args.document_id, args.content)
    _emit(args, {"note": note.to_payload()}, f"Note added ({note.id})")
    return EXIT_OK


def cmd_notes_edit(client: ElibraryClient, args: argparse.Namespace) -> int:
    note = client.sync.update_note(args.note_id, args.content)
    _emit(args, {"note": note.to_payload()}, f"Note updated ({note.id})")
    return EXIT_OK


def cmd_notes_delete(client: ElibraryClient, args: argparse.Namespace) -> int:
    client.sync.delete_note(args.note_id)
    _emit(args, {"deleted": args.note_id}, "The note has been removed")
    return EXIT_OK


def cmd_sync(client: ElibraryClient, args: argparse.Namespace) -> int:
    report = client.sync.reconcile()
    payload: Dict[str, Any] = {
        "replayed": report.replayed,
        "dropped": report.dropped,
        "remaining": report.remaining,
        "stopped_reason": report.stopped_reason,
    }
    human = f"replayed={report.replayed} dropped={report.dropped} remaining={report.remaining}"
    if report.stopped_reason:
        human += f" (stopped: {report.stopped_reason})"
    _emit(args, payload, human)
    return EXIT_OK if report.complete else EXIT_ERROR


def cmd_config(client: Optional[ElibraryClient], args: argparse.Namespace) -> int:
    summary = dict(app_config.metadata(), **app_config.summarize_runtime_config())
    _emit(args, summary, "\n".join(f"{k}: {v}" for k, v in sorted(summary.items())))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def parse_args(argv: List[str]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="elibrary", description="E-Library client with offline fallback.")
    ap.add_argument("--json", action="store_true", help="Output JSON only")
    ap.add_argument("--api-url", help="Backend root URL (overrides ELIBRARY_API_URL)")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Sign in and store the session token")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.set_defaults(handler=cmd_login)

    p = sub.add_parser("register", help="Create an account and sign in")
    p.add_argument("username")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.set_defaults(handler=cmd_register)

    sub.add_parser("logout", help="Forget the stored session").set_defaults(handler=cmd_logout)
    sub.add_parser("whoami", help="Show the signed-in user").set_defaults(handler=cmd_whoami)

    p = sub.add_parser("list", help="List documents, newest first")
    p.add_argument("--search", help="Filter on title or filename")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("show", help="Show one document")
    p.add_argument("document_id")
    p.set_defaults(handler=cmd_show)

    p = sub.add_parser("upload", help="Upload a PDF (max 10MB)")
    p.add_argument("path")
    p.set_defaults(handler=cmd_upload)

    p = sub.add_parser("delete", help="Delete a document")
    p.add_argument("document_id")
    p.set_defaults(handler=cmd_delete)

    notes = sub.add_parser("notes", help="Manage notes of a document")
    notes_sub = notes.add_subparsers(dest="notes_command", required=True)
    p = notes_sub.add_parser("list")
    p.add_argument("document_id")
    p.set_defaults(handler=cmd_notes_list)
    p = notes_sub.add_parser("add")
    p.add_argument("document_id")
    p.add_argument("content")
    p.set_defaults(handler=cmd_notes_add)
    p = notes_sub.add_parser("edit")
    p.add_argument("note_id")
    p.add_argument("content")
    p.set_defaults(handler=cmd_notes_edit)
    p = notes_sub.add_parser("delete")
    p.add_argument("note_id")
    p.set_defaults(handler=cmd_notes_delete)

    sub.add_parser("sync", help="Replay offline changes to the backend").set_defaults(handler=cmd_sync)
    sub.add_parser("config", help="Show effective configuration").set_defaults(handler=cmd_config)
    return ap.parse_args(argv)


def run(args: argparse.Namespace) -> int:
    if args.handler is cmd_config:
        return cmd_config(None, args)
    client = build_client(base_url=f"{args.api_url.rstrip('/')}/api" if args.api_url else None)
    try:
        return args.handler(client, args)
    except UnauthorizedError:
        print("Session expired or invalid. Please sign in again: elibrary login <email>", file=sys.stderr)
        return EXIT_UNAUTHORIZED
    except (ValidationError, RecordNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except ElibraryError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return EXIT_ERROR


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(sys.argv[1:] if argv is None else argv)
        return run(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as exc:
        print(f"FATAL: Unhandled exception: {exc}", file=sys.stderr)
        traceback.print_exc()
        return 99


__all__ = ["main", "parse_args", "run"]
