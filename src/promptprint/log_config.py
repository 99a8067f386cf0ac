"""Logging setup with secret scrubbing.

Meshy uses bearer tokens, Craftcloud and the download proxy use
``X-API-Key`` headers; any of them can leak into a log line through an
exception message or a debug dump of request headers.  :class:`ScrubFilter`
redacts those values before a record reaches a handler.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_DEFAULT_LOG_DIR = os.path.join(str(Path.home()), ".promptprint", "logs")
_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_REDACTED = "***REDACTED***"

_SCRUB_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r'((?:proxy_)?api_key["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE),
     rf"\1{_REDACTED}"),
    (re.compile(r'(x-api-key["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE),
     rf"\1{_REDACTED}"),
    (re.compile(r"(Bearer\s+)([A-Za-z0-9._~+/=-]+)", re.IGNORECASE),
     rf"\1{_REDACTED}"),
    (re.compile(r'(token["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE),
     rf"\1{_REDACTED}"),
    (re.compile(r'(password["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE),
     rf"\1{_REDACTED}"),
    (re.compile(r'(secret["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE),
     rf"\1{_REDACTED}"),
]


def _scrub(text: str) -> str:
    for pattern, replacement in _SCRUB_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class ScrubFilter(logging.Filter):
    """Redact API keys, bearer tokens and passwords from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = _scrub(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: _scrub(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    _scrub(a) if isinstance(a, str) else a
                    for a in record.args
                )
        return True


def _ensure_scrubbed(handler: logging.Handler) -> None:
    if not any(isinstance(f, ScrubFilter) for f in handler.filters):
        handler.addFilter(ScrubFilter())


def configure_logging(
    log_dir: str | None = None,
    *,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
    level: str | None = None,
    stderr: bool = False,
) -> str:
    """Install a rotating file handler (and optionally stderr) on the root logger.

    Safe to call more than once: handlers are only added when missing, and
    every root handler ends up with a :class:`ScrubFilter`.

    :param log_dir: Directory for ``promptprint.log``.  Reads
        ``PROMPTPRINT_LOG_DIR``, then falls back to ``~/.promptprint/logs``.
    :param level: Level name.  Reads ``PROMPTPRINT_LOG_LEVEL``, default ``INFO``.
    :param stderr: Also echo records to stderr.
    :returns: Path of the log file.
    """
    log_dir = log_dir or os.environ.get("PROMPTPRINT_LOG_DIR", _DEFAULT_LOG_DIR)
    level = level or os.environ.get("PROMPTPRINT_LOG_LEVEL", "INFO")
    log_level = getattr(logging, level.upper(), logging.INFO)

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "promptprint.log")

    root = logging.getLogger()
    root.setLevel(log_level)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if stderr and not any(
        type(h) is logging.StreamHandler for h in root.handlers
    ):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    for handler in root.handlers:
        handler.setLevel(log_level)
        _ensure_scrubbed(handler)

    return log_path
