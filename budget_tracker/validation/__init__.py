"""Validation package."""

from budget_tracker.validation.validator import (
    TransactionValidator,
    require_date_key,
    require_positive_amount,
)

__all__ = [
    "TransactionValidator",
    "require_date_key",
    "require_positive_amount",
]
