"""
Logging redaction helpers.
Redacts API keys and wallet secrets from log messages.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # Gemini style ?key=<api key> query parameter
    (re.compile(r"([?&]key=)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # LLM / swap backend api key or secret in config output
    (re.compile(r"(?i)(api[_-]?key|api[_-]?secret)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
    # Wallet private keys
    (re.compile(r"(?i)(private[_-]?key)\s*[:=]\s*(0x)?[A-Fa-f0-9]{32,}"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            # Malformed format args; let the handler report it unmodified
            return True
        record.msg = redact_message(message)
        record.args = ()
        return True


def install_redaction_filter() -> None:
    root = logging.getLogger()
    for existing in root.filters:
        if isinstance(existing, RedactingFilter):
            return
    filt = RedactingFilter()
    root.addFilter(filt)
    # Root-logger filters do not see records propagated from child loggers,
    # so attach to the handlers as well.
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(filt)
