"""Structured logging setup for textbook OCR.

structlog renders each event to a JSON line; the standard library handlers
only ship those lines to the rotating log file and, in server mode, stderr.
"""

import logging
import logging.handlers
import pathlib
import sys
from typing import Any, Dict, List

import structlog

from .constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_MAX_BYTES,
    LOG_FIELD_MAX_CHARS,
    LOG_FILE_NAME,
)


class AuditProcessor:
    """structlog processor that tags audit events and bounds long text fields.

    Page text and model replies can run to many kilobytes; string fields
    longer than ``max_chars`` are cut and their original length recorded.
    """

    def __init__(self, max_chars: int = LOG_FIELD_MAX_CHARS) -> None:
        self.max_chars = max_chars

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        if "event_type" in event_dict:
            event_dict["audit_trail"] = True

        for key, value in list(event_dict.items()):
            if key != "event" and isinstance(value, str) and len(value) > self.max_chars:
                event_dict[key] = value[: self.max_chars] + "..."
                event_dict[f"{key}_length"] = len(value)

        return event_dict


def setup_logging(
    log_dir: pathlib.Path,
    level: str = DEFAULT_LOG_LEVEL,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    enable_console: bool = False,
) -> pathlib.Path:
    """Set up structured logging with a rotating JSON log file.

    Args:
        log_dir: Directory where log files should be created
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of backup log files to keep
        enable_console: Whether to mirror log lines to stderr (server mode)

    Returns:
        Path to the main log file
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    log_file.touch()

    numeric_level = getattr(logging, level.upper())

    handlers: List[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            AuditProcessor(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=numeric_level, handlers=handlers, format="%(message)s", force=True)

    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically the component name)
    """
    return structlog.get_logger(name)


def bind_request_context(**fields: Any) -> None:
    """Attach fields to every event logged until :func:`clear_request_context`."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
