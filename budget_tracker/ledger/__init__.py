"""
Ledger Package

Store, balance calculator, debt synchronizer, recurrence expansion and
aggregates. The engine that ties them into one mutation pipeline lives
in ``budget_tracker.ledger.engine``.
"""

from budget_tracker.ledger.errors import LedgerError, LedgerValidationError
from budget_tracker.ledger.store import LedgerStore
from budget_tracker.ledger.balances import get_account_balance, get_balances, transaction_delta
from budget_tracker.ledger.debts import DebtSynchronizer
from budget_tracker.ledger.recurrence import (
    describe_pattern,
    find_stale_instances,
    next_occurrence,
    occurrences_in_month,
    plan_materializations,
)
from budget_tracker.ledger.aggregates import (
    budget_spending,
    budget_status,
    classify_budget,
    goal_progress,
)

__all__ = [
    "LedgerError",
    "LedgerValidationError",
    "LedgerStore",
    "get_account_balance",
    "get_balances",
    "transaction_delta",
    "DebtSynchronizer",
    "describe_pattern",
    "find_stale_instances",
    "next_occurrence",
    "occurrences_in_month",
    "plan_materializations",
    "budget_spending",
    "budget_status",
    "classify_budget",
    "goal_progress",
]
