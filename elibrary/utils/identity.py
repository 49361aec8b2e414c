"""Identity helpers."""
from __future__ import annotations

from typing import Any, Optional


def normalize_email(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip().lower()
    return cleaned or None


__all__ = ["normalize_email"]
