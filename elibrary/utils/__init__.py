"""Utility helpers."""
from .identity import normalize_email
from .timestamps import (
    utcnow,
    format_timestamp,
    parse_timestamp,
    epoch_millis,
)

__all__ = [
    "normalize_email",
    "utcnow",
    "format_timestamp",
    "parse_timestamp",
    "epoch_millis",
]
