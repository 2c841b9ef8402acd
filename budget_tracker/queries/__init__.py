"""Read-only query package."""

from budget_tracker.queries.views import (
    daily_total,
    monthly_total,
    net_worth,
    spending_by_category,
    weekly_total,
)

__all__ = [
    "daily_total",
    "monthly_total",
    "net_worth",
    "spending_by_category",
    "weekly_total",
]
