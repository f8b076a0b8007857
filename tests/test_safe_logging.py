"""Tests for PII-safe logging."""

from __future__ import annotations

import logging

from rich.console import Console

from album_consensus.safe_logging import (
    SafeLogFormatter,
    configure_rich_logging,
    configure_safe_logging,
    redact_dict,
    redact_value,
    sanitize_message,
)


def _record(msg: str, args: tuple | None = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args or (),
        exc_info=None,
    )


def test_redact_value():
    assert redact_value("hunter2-secret") == "hunt***"
    assert redact_value("abc") == "***"
    assert redact_value("abcdef", 3) == "abc***"


def test_redact_dict():
    data = {
        "user_id": "user-a",
        "email": "alice@example.com",
        "nested": {"password_hash": "pbkdf2$abc", "username": "alice"},
        "contributors": [{"user_email": "bob@example.com", "user_id": "user-b"}],
    }

    redacted = redact_dict(data)

    assert redacted["user_id"] == "user-a"
    assert redacted["email"] == "alic***"
    assert redacted["nested"]["password_hash"] == "pbkd***"
    assert redacted["nested"]["username"] == "alice"
    assert redacted["contributors"][0]["user_email"] == "bob@***"
    assert redacted["contributors"][0]["user_id"] == "user-b"


def test_sanitize_message_masks_email_keeps_ids():
    msg = "Adding user-a (alice@example.com) as contributor for year 2024"
    sanitized = sanitize_message(msg)
    assert "alice@example.com" not in sanitized
    assert "[EMAIL]" in sanitized
    assert "user-a" in sanitized
    assert "2024" in sanitized


def test_formatter_sanitizes_message_and_args():
    formatter = SafeLogFormatter(fmt="%(message)s")
    record = _record("Confirmation from %s", ("admin@example.com",))
    formatted = formatter.format(record)
    assert formatted == "Confirmation from [EMAIL]"
    # Original record is untouched
    assert record.args == ("admin@example.com",)


def test_formatter_can_be_disabled():
    formatter = SafeLogFormatter(fmt="%(message)s", sanitize_messages=False)
    assert formatter.format(_record("to alice@example.com")) == "to alice@example.com"


def test_configure_rich_logging_replaces_handlers():
    console = Console(record=True, width=120)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_rich_logging(level=logging.INFO, console=console, show_time=False)
        configure_rich_logging(level=logging.INFO, console=console, show_time=False)
        assert len(root.handlers) == 1

        logging.getLogger("album_consensus.test").info("Revealing for carol@example.com")
        output = console.export_text()
        assert "[EMAIL]" in output
        assert "carol@example.com" not in output
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_configure_safe_logging_uses_format(capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_safe_logging(level=logging.INFO, format_string="%(levelname)s|%(message)s")
        logging.getLogger("album_consensus.test").info("Marked seen for dave@example.com")
        err = capsys.readouterr().err
        assert "INFO|Marked seen for [EMAIL]" in err
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
