"""Audit trail for requests, model calls and transformations.

Events go through the structlog pipeline configured in :mod:`textbook_ocr.logging`
and carry a fixed set of fields (event type, component, session, outcome) so
the JSON log file can be filtered per request or per operation.
"""

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from .logging import get_logger

SENSITIVE_FIELDS = frozenset({"api_key", "authorization"})
"""Field names whose values are masked before they reach the log."""


class AuditEventType(Enum):
    """Types of audit events tracked by the system."""

    # User Actions
    CLI_COMMAND = "cli_command"
    CONFIG_CHANGE = "config_change"

    # Request handling
    HTTP_REQUEST = "http_request"
    TRANSFORMATION = "transformation"

    # Model service
    API_REQUEST = "api_request"
    API_RESPONSE = "api_response"

    # System Events
    APPLICATION_START = "application_start"
    APPLICATION_END = "application_end"
    AUTHENTICATION = "authentication"
    ERROR_RECOVERY = "error_recovery"


def mask_secret(value: Any) -> str:
    """Keep the first four characters of a secret."""
    if not value:
        return "(not set)"
    return f"{str(value)[:4]}..."


def _event_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    # None values are dropped and secrets masked
    return {
        key: mask_secret(value) if key in SENSITIVE_FIELDS else value
        for key, value in fields.items()
        if value is not None
    }


def _new_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class OperationRecord:
    """Handle yielded by :meth:`AuditLogger.operation_context`.

    Fields added with :meth:`note` are attached to the completion event.
    """

    operation: str
    operation_id: str = field(default_factory=_new_id)
    started: float = field(default_factory=time.time)
    notes: Dict[str, Any] = field(default_factory=dict)

    def note(self, **fields: Any) -> None:
        self.notes.update(fields)

    @property
    def elapsed(self) -> float:
        return round(time.time() - self.started, 3)


class AuditLogger:
    """Structured logger that stamps every event with audit metadata."""

    def __init__(self, component: str):
        """Initialize audit logger for a specific component.

        Args:
            component: Name of the component using this logger
        """
        self.component = component
        self.logger = get_logger(component)
        self._session_id = _new_id()

    def audit(
        self,
        event_type: AuditEventType,
        message: str,
        *,
        level: str = "info",
        operation: Optional[str] = None,
        outcome: str = "success",
        **fields: Any,
    ) -> None:
        """Log an audit event with structured metadata.

        Args:
            event_type: Type of audit event
            message: Human-readable message
            level: Log level (debug, info, warning, error)
            operation: Operation being performed
            outcome: Result of the operation (success, failure, degraded)
            **fields: Additional fields; None values are dropped
        """
        event = _event_fields(
            {
                "event_type": event_type.value,
                "component": self.component,
                "session_id": self._session_id,
                "timestamp": datetime.now().isoformat(),
                "operation": operation,
                "outcome": outcome,
                **fields,
            }
        )
        getattr(self.logger, level)(message, **event)

    def error(self, message: str, **fields: Any) -> None:
        """Log an error outside of a typed audit event."""
        self.logger.error(
            message,
            component=self.component,
            session_id=self._session_id,
            **_event_fields(fields),
        )

    @contextmanager
    def operation_context(
        self,
        operation: str,
        event_type: AuditEventType = AuditEventType.TRANSFORMATION,
        **context: Any,
    ) -> Iterator[OperationRecord]:
        """Record the start, duration and outcome of an operation.

        Args:
            operation: Name of the operation being performed
            event_type: Type of audit event
            **context: Fields attached to every event of the operation

        Yields:
            OperationRecord for attaching result fields
        """
        record = OperationRecord(operation)
        self.audit(
            event_type,
            f"Starting {operation}",
            level="debug",
            operation=operation,
            operation_id=record.operation_id,
            **context,
        )

        try:
            yield record
        except Exception as e:
            self.audit(
                event_type,
                f"Failed {operation}: {e}",
                level="error",
                operation=operation,
                outcome="failure",
                operation_id=record.operation_id,
                duration_seconds=record.elapsed,
                error_type=type(e).__name__,
                error_message=str(e),
                **context,
            )
            raise

        self.audit(
            event_type,
            f"Completed {operation}",
            operation=operation,
            operation_id=record.operation_id,
            duration_seconds=record.elapsed,
            **{**context, **record.notes},
        )


def get_audit_logger(component: str) -> AuditLogger:
    """Get an audit logger instance for a component."""
    return AuditLogger(component)
