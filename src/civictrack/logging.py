"""Structured JSON logging for civictrack.

Writes JSONL to .civictrack/civictrack.log with rotation (5MB, 3 backups).
Request and lifecycle context (actor, issue, error code) travels in ``extra=``;
session tokens are masked in messages and exception text.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_FILENAME = "civictrack.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# Optional ``extra=`` keys copied into the JSON entry when present
_EXTRA_FIELDS = ("route", "actor", "role", "user_id", "issue_id", "code", "status_code", "duration_ms", "error")

# Bearer credentials and signed session tokens never reach the log file
_TOKEN_RE = re.compile(r"(Bearer\s+)?\beyJ[\w-]*\.[\w-]+\.[\w-]+")


def redact(text: str) -> str:
    return _TOKEN_RE.sub("[redacted]", text)


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact(record.getMessage()),
        }
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = redact(str(record.exc_info[1]))
        return json.dumps(entry, default=str)


def setup_logging(civic_dir: Path) -> logging.Logger:
    """Set up structured JSON logging to .civictrack/civictrack.log.

    Returns the package logger; module loggers under ``civictrack.*`` propagate to it.
    """
    logger = logging.getLogger("civictrack")
    log_path = civic_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            # Different path: drop the stale handler first
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger
