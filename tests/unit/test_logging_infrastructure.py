"""Tests for the structured logging setup."""

import json
import logging
import tempfile
from pathlib import Path

import pytest

from textbook_ocr.logging import (
    AuditProcessor,
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)

pytestmark = pytest.mark.unit


def flush_handlers() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestAuditProcessor:
    """Test the AuditProcessor class for structured logging."""

    def test_audit_processor_adds_audit_trail_marker(self):
        """Test that events with an event type are marked as audit events."""
        result = AuditProcessor()(None, "info", {"event": "Test", "event_type": "cli_command"})
        assert result["audit_trail"] is True

    def test_audit_processor_no_audit_marker(self):
        """Test that regular events don't get audit trail marker."""
        result = AuditProcessor()(None, "info", {"event": "Regular event"})
        assert "audit_trail" not in result

    def test_long_fields_are_cut(self):
        """Test that oversized string fields are shortened and measured."""
        result = AuditProcessor(max_chars=5)(None, "info", {"event": "Reply", "reply": "abcdefgh"})
        assert result["reply"] == "abcde..."
        assert result["reply_length"] == 8

    def test_event_message_and_short_fields_are_kept(self):
        """Test that the event itself and short values pass through."""
        event = {"event": "x" * 20, "model": "abc", "count": 12345678}
        result = AuditProcessor(max_chars=5)(None, "info", dict(event))
        assert result == event


class TestSetupLogging:
    """Test the setup_logging function."""

    def test_setup_logging_creates_log_file(self):
        """Test that setup_logging creates the directory and returns the log file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir) / "logs"

            log_file = setup_logging(log_dir)

            assert log_file == log_dir / "textbook_ocr.log"
            assert log_file.exists()

    def test_setup_logging_sets_level(self):
        """Test that the root logger follows the requested level."""
        with tempfile.TemporaryDirectory() as temp_dir:
            setup_logging(Path(temp_dir), level="warning")
            assert logging.getLogger().level == logging.WARNING

    def test_console_mirroring(self):
        """Test that console output adds a stderr handler."""
        with tempfile.TemporaryDirectory() as temp_dir:
            setup_logging(Path(temp_dir), enable_console=True)
            handler_types = {type(handler) for handler in logging.getLogger().handlers}
            assert logging.StreamHandler in handler_types

    def test_events_are_written_as_json(self):
        """Test that logged events reach the file as JSON lines."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = setup_logging(Path(temp_dir))

            get_logger("test").info("hello", event_type="cli_command")
            flush_handlers()

            record = json.loads(log_file.read_text().strip().splitlines()[-1])
            assert record["event"] == "hello"
            assert record["audit_trail"] is True
            assert record["level"] == "info"

    def test_request_context_is_merged(self):
        """Test that bound request fields appear on events until cleared."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = setup_logging(Path(temp_dir))
            logger = get_logger("test")

            bind_request_context(request_id="abc123")
            logger.info("inside")
            clear_request_context()
            logger.info("outside")
            flush_handlers()

            inside, outside = [json.loads(line) for line in log_file.read_text().splitlines()]
            assert inside["request_id"] == "abc123"
            assert "request_id" not in outside
