"""
Data Models Package

This package contains all Pydantic models used in the Budget Tracker engine.
All data flowing through the engine must conform to these schemas.
"""

from budget_tracker.models.ledger import (
    CREDIT_ACCOUNT_TYPES,
    Account,
    AccountType,
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
    DayBucket,
    Debt,
    DebtPayment,
    DebtType,
    RecurrenceDayType,
    RecurrencePattern,
    RecurrenceType,
    RecurringKind,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    default_categories,
    new_id,
)
from budget_tracker.models.snapshot import LedgerSnapshot, migrate_legacy_snapshot
from budget_tracker.models.views import (
    BudgetHealth,
    BudgetStatus,
    GoalProgress,
    ImportResult,
    PeriodTotals,
    StatementLine,
    ValidationIssue,
    ValidationResult,
)
from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CREDIT_ACCOUNT_TYPES",
    "Account",
    "AccountType",
    "Budget",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "DayBucket",
    "Debt",
    "DebtPayment",
    "DebtType",
    "RecurrenceDayType",
    "RecurrencePattern",
    "RecurrenceType",
    "RecurringKind",
    "RecurringRule",
    "SavingsGoal",
    "Transaction",
    "TransactionType",
    "default_categories",
    "new_id",
    # Snapshot
    "LedgerSnapshot",
    "migrate_legacy_snapshot",
    # Derived views
    "BudgetHealth",
    "BudgetStatus",
    "GoalProgress",
    "ImportResult",
    "PeriodTotals",
    "StatementLine",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
