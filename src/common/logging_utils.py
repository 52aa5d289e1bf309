"""Centralized logging helpers.

Every module logs through ``logging.getLogger(__name__)`` and attaches
structured fields with ``extra=extra_context(...)``. Secrets must go through
``safe_url``/``redact`` before they reach a record.
"""

from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from constants import Constants

LOG_LEVEL_ENV = "NPMRESOLVER_LOG_LEVEL"

_SENSITIVE_PARAMS = {"token", "access_token", "auth", "authtoken", "password", "key", "secret"}
_REDACTIONS = [
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"),
    re.compile(r"(?i)(_authToken\s*[=:]\s*)\S+"),
    re.compile(r"(?i)(npm_)[A-Za-z0-9]{20,}"),
]


def configure_logging() -> None:
    """Configure the root logger once, honoring ``NPMRESOLVER_LOG_LEVEL``."""
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for structured log records, dropping None values."""
    return {key: value for key, value in fields.items() if value is not None}


def redact(text: Optional[str]) -> str:
    """Mask bearer tokens and npm auth tokens inside free text."""
    if not text:
        return ""
    result = str(text)
    for pattern in _REDACTIONS:
        result = pattern.sub(lambda m: m.group(1) + "[REDACTED]", result)
    return result


def safe_url(url: Optional[str]) -> str:
    """Strip credentials and sensitive query parameters from a URL."""
    if not url:
        return ""
    parts = urlsplit(url)
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "[REDACTED]@" + netloc.rsplit("@", 1)[1]
    query = parts.query
    if query:
        pairs = [
            (k, "[REDACTED]" if k.lower() in _SENSITIVE_PARAMS else v)
            for k, v in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(pairs, safe="[]")
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds, live while the block is still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000, 2)
