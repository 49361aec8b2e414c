"""Startup helpers."""
from .wiring import ElibraryClient, build_client  # noqa: F401

__all__ = ["ElibraryClient", "build_client"]
