"""
Audit Models for Budget Tracker

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Traceability of every balance-affecting change
2. Debugging information when derived views look wrong
3. A record of silent consistency repairs
4. Visibility into persistence failures that never reach the user

DESIGN DECISION: Audit events are emitted, never edited.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the mutation pipeline has its own event type.
    """
    # Ledger events
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_REMOVED = "transaction_removed"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_MOVED = "transaction_moved"

    # Recurring rules
    RECURRING_RULE_ADDED = "recurring_rule_added"
    RECURRING_RULE_UPDATED = "recurring_rule_updated"
    RECURRING_RULE_REMOVED = "recurring_rule_removed"
    RECURRING_MATERIALIZED = "recurring_materialized"
    RECURRING_SERIES_TRUNCATED = "recurring_series_truncated"
    STALE_INSTANCES_REMOVED = "stale_instances_removed"

    # Entities
    ENTITY_ADDED = "entity_added"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_REMOVED = "entity_removed"
    ENTITY_NOT_FOUND = "entity_not_found"

    # Debts
    DEBT_SYNCED = "debt_synced"
    DEBT_DRIFT_REPAIRED = "debt_drift_repaired"
    DEBT_PAYMENT_RECORDED = "debt_payment_recorded"
    DEBT_PAYMENT_REMOVED = "debt_payment_removed"

    # Goals
    GOAL_CONTRIBUTION = "goal_contribution"

    # Import
    STATEMENT_IMPORTED = "statement_imported"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Persistence
    SNAPSHOT_LOADED = "snapshot_loaded"
    SNAPSHOT_SAVED = "snapshot_saved"
    SNAPSHOT_MIGRATED = "snapshot_migrated"
    SAVE_FAILED = "save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'debt', 'snapshot')"
    )
    entity_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added("2024-05-01", tx)
        event = AuditEventBuilder.debt_drift_repaired(debt_id, old, new)
    """

    @staticmethod
    def transaction_added(date_key: str, transaction_id: str, tx_type: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"{tx_type.capitalize()} of {amount} recorded on {date_key}",
            details={"date": date_key, "type": tx_type, "amount": amount},
        )

    @staticmethod
    def transaction_removed(date_key: str, transaction_id: str, cascaded: int = 0) -> AuditEvent:
        description = f"Transaction removed from {date_key}"
        if cascaded:
            description += f" with {cascaded} later recurring instance(s)"
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REMOVED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=description,
            details={"date": date_key, "cascaded": cascaded},
        )

    @staticmethod
    def transaction_updated(date_key: str, transaction_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction on {date_key} updated: {', '.join(fields) or 'no fields'}",
            details={"date": date_key, "fields": fields},
        )

    @staticmethod
    def transaction_moved(
        from_date: str,
        to_date: str,
        old_id: str,
        new_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_MOVED,
            entity_type="transaction",
            entity_id=new_id,
            description=f"Transaction moved from {from_date} to {to_date}",
            details={"from_date": from_date, "to_date": to_date, "previous_id": old_id},
        )

    @staticmethod
    def recurring_materialized(year: int, month: int, created: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            entity_type="recurring_rule",
            description=f"Materialized {created} recurring instance(s) for {year:04d}-{month:02d}",
            details={"year": year, "month": month, "created": created},
        )

    @staticmethod
    def stale_instances_removed(removed: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_INSTANCES_REMOVED,
            entity_type="recurring_rule",
            description=f"Removed {removed} recurring instance(s) dated before their rule existed",
            details={"removed": removed},
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_")[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.replace('_', ' ').capitalize()} {verb}",
            details=details or {},
        )

    @staticmethod
    def entity_not_found(entity_type: str, entity_id: str, operation: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{operation}: no {entity_type.replace('_', ' ')} with id {entity_id}",
            details={"operation": operation},
        )

    @staticmethod
    def debt_drift_repaired(debt_id: str, stored: str, derived: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_DRIFT_REPAIRED,
            entity_type="debt",
            entity_id=debt_id,
            description=f"Debt balance corrected from {stored} to {derived}",
            details={"stored_balance": stored, "derived_balance": derived},
        )

    @staticmethod
    def debt_payment_recorded(payment_id: str, debt_id: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_PAYMENT_RECORDED,
            entity_type="debt_payment",
            entity_id=payment_id,
            description=f"Payment of {amount} recorded against debt {debt_id}",
            details={"debt_id": debt_id, "amount": amount},
        )

    @staticmethod
    def goal_contribution(goal_id: str, amount: str, transaction_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION,
            entity_type="savings_goal",
            entity_id=goal_id,
            description=f"Contributed {amount} to savings goal",
            details={"amount": amount, "transaction_id": transaction_id},
        )

    @staticmethod
    def statement_imported(added: int, skipped: int, errors: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_IMPORTED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="statement",
            description=f"Statement import: {added} added, {skipped} skipped, {errors} rejected",
            details={"added": added, "skipped": skipped, "errors": errors},
        )

    @staticmethod
    def validation_failed(operation: str, issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"{operation} rejected with {len(issues)} issue(s)",
            details={"operation": operation, "issues": issues},
        )

    @staticmethod
    def snapshot_event(
        event_type: AuditEventType,
        user_id: str,
        description: str,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        severity = AuditSeverity.ERROR if error_message else AuditSeverity.INFO
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type="snapshot",
            entity_id=user_id,
            description=description,
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
