"""Client logging helpers.

Lightweight singleton logger setup. Honors the log level from
`elibrary.config.log_level_name()`.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from elibrary import config as app_config

_LOCK = threading.Lock()
_PRIMARY: Optional[logging.Logger] = None


def get_logger(name: str = "elibrary") -> logging.Logger:
    global _PRIMARY
    if name == "elibrary" and _PRIMARY is not None:
        return _PRIMARY
    with _LOCK:
        if name == "elibrary" and _PRIMARY is not None:
            return _PRIMARY
        logger = logging.getLogger(name)
        level_name = app_config.log_level_name()
        level = getattr(logging, level_name, logging.INFO)
        logger.setLevel(level)
        if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[elibrary] %(asctime)s %(levelname)s %(name)s %(message)s"))
            logger.addHandler(handler)
        logger.propagate = False
        if name == "elibrary":
            _PRIMARY = logger
        return logger


__all__ = ["get_logger"]
