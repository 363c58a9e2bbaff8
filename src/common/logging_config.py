"""Logging setup for the wizard process."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure the root logger.

    With a log file, everything at `level` goes to a rotating file. Without
    one, only warnings and errors reach stderr so interactive prompts stay
    readable.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)
    root = logging.getLogger()
    root.setLevel(numeric)
    for h in root.handlers[:]:
        root.removeHandler(h)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        handler.setLevel(numeric)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(max(numeric, logging.WARNING))
    handler.setFormatter(formatter)
    root.addHandler(handler)
