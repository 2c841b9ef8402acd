"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger is logged.
This provides:
1. Complete traceability of balance-affecting changes
2. Debugging capability when a derived view looks wrong
3. A visible record of silent debt repairs and swallowed persistence errors

The audit logger:
- Is synchronous, like the mutation pipeline that calls it
- Never raises into the caller
- Keeps a bounded in-memory history so callers can inspect recent signals
"""

import logging
from collections import deque
from typing import Optional

import structlog

from budget_tracker.config import get_settings
from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def configure_logging(log_level: str = "info", json_logs: bool = True) -> None:
    """Configure stdlib logging and structlog for the whole package."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


_app_settings = get_settings().app
configure_logging(_app_settings.log_level, _app_settings.log_json)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and keeps the most recent
    ones in memory.
    """

    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to retain for inspection.
        """
        self._logger = structlog.get_logger("budget_tracker.audit")
        self._history: deque[AuditEvent] = deque(maxlen=history_size)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level its severity asks for."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def recent_events(
        self,
        event_type: Optional[AuditEventType] = None,
    ) -> list[AuditEvent]:
        """Recent events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if event.event_type == event_type]

    def log_not_found(self, entity_type: str, entity_id: str, operation: str) -> None:
        """Log an operation that referenced an unknown id."""
        self.log(AuditEventBuilder.entity_not_found(entity_type, entity_id, operation))

    def log_validation_failed(self, operation: str, issues: list[dict]) -> None:
        """Log input rejected at the boundary."""
        self.log(AuditEventBuilder.validation_failed(operation, issues))

    def log_debt_repaired(self, debt_id: str, stored: str, derived: str) -> None:
        """Log a corrected drift between a debt and its linked account."""
        self.log(AuditEventBuilder.debt_drift_repaired(debt_id, stored, derived))

    def log_entity_change(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log creation, update or removal of a non-transaction entity."""
        self.log(AuditEventBuilder.entity_changed(event_type, entity_type, entity_id, details))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))
