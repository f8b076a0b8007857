"""PII-safe logging utilities for album-consensus.

Users are identified in logs by id. Email addresses that slip into a
message are masked, and secret-looking fields in structured data are
redacted before they are logged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "password",
        "password_hash",
        "secret",
        "token",
        "session",
        "api_key",
        "apikey",
        "auth",
        "authorization",
        "credential",
        "email",
    }
)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only the first few characters.

    Args:
        value: Value to redact
        visible_chars: Number of characters to show

    Returns:
        Redacted string (e.g., "hunt***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_dict(
    data: Mapping[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a mapping.

    Field names match case-insensitively, exactly or as a substring
    (so `user_email` is redacted along with `email`).
    """
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        should_redact = key_lower in redact_fields or any(
            field in key_lower for field in redact_fields
        )

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, Mapping):
            result[key] = redact_dict(value, redact_fields)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(item, redact_fields) if isinstance(item, Mapping) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Mask email addresses in a log message. Ids and years are kept."""
    return EMAIL_PATTERN.sub("[EMAIL]", message)


class SafeLogFormatter(logging.Formatter):
    """Log formatter that masks emails and redacts mapping arguments."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        sanitize_messages: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.sanitize_messages = sanitize_messages

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)

        if self.sanitize_messages:
            record.msg = sanitize_message(str(record.msg))
            if record.args:
                record.args = self._sanitize_args(record.args)

        return super().format(record)

    def _sanitize_args(self, args: tuple[Any, ...] | Mapping[str, Any]) -> Any:
        if isinstance(args, Mapping):
            return redact_dict(args)
        return tuple(self._sanitize_value(arg) for arg in args)

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_message(value)
        if isinstance(value, Mapping):
            return redact_dict(value)
        return value


def configure_safe_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    sanitize_messages: bool = True,
) -> None:
    """Configure root logging with a plain stderr handler and SafeLogFormatter.

    Like configure_rich_logging, existing root handlers are replaced.
    """
    formatter = SafeLogFormatter(
        fmt=format_string or DEFAULT_FORMAT,
        sanitize_messages=sanitize_messages,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def configure_rich_logging(
    level: int = logging.WARNING,
    sanitize_messages: bool = True,
    show_time: bool = True,
    show_path: bool = False,
    console: Console | None = None,
) -> Console:
    """Route logging through a Rich handler and return the console it writes to.

    Log records go to stderr so command output on stdout stays parseable
    (e.g. with `-o json`). Existing root handlers are replaced, which makes
    repeated calls (one per CLI invocation in tests) safe.
    """
    if console is None:
        console = Console(stderr=True)

    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        markup=False,
    )
    # RichHandler renders time and level itself
    handler.setFormatter(SafeLogFormatter(fmt="%(message)s", sanitize_messages=sanitize_messages))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return console
