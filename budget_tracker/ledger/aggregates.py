"""
Budget & Goal Aggregator

Read-only spend-vs-limit and contribution-vs-target views over the ledger.
"""

from decimal import Decimal
from typing import Mapping, Optional

from budget_tracker.dates import key_in_month, key_in_year
from budget_tracker.models.ledger import Budget, BudgetPeriod, DayBucket, SavingsGoal
from budget_tracker.models.views import BudgetHealth, BudgetStatus, GoalProgress

DEFAULT_AT_RISK_PERCENTAGE = Decimal("80")
DEFAULT_OVER_PERCENTAGE = Decimal("100")

_HUNDRED = Decimal("100")


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return Decimal("0")
    return part / whole * _HUNDRED


def budget_spending(
    budget: Budget,
    days: Mapping[str, DayBucket],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Decimal:
    """
    Spending tagged with the budget's category inside its period window.

    Monthly: the given year and month. Yearly: the given year.
    Weekly: approximated by the same calendar month, so a week spanning
    a month boundary is under-counted.

    ``year`` defaults to the budget's year and ``month`` to the budget's
    month. A monthly or weekly budget with no month at all spends nothing.
    """
    year = year if year is not None else budget.year
    month = month if month is not None else budget.month

    if budget.period == BudgetPeriod.YEARLY:
        def in_window(date_key: str) -> bool:
            return key_in_year(date_key, year)
    elif month is None:
        return Decimal("0")
    else:
        def in_window(date_key: str) -> bool:
            return key_in_month(date_key, year, month)

    total = Decimal("0")
    for date_key, bucket in days.items():
        if not in_window(date_key):
            continue
        for tx in bucket.spending:
            if tx.category == budget.category_id:
                total += tx.amount
    return total


def classify_budget(
    percentage: Decimal,
    at_risk_percentage: Decimal = DEFAULT_AT_RISK_PERCENTAGE,
    over_percentage: Decimal = DEFAULT_OVER_PERCENTAGE,
) -> BudgetHealth:
    """on_track up to the at-risk line, at_risk up to the over line, over beyond."""
    if percentage <= at_risk_percentage:
        return BudgetHealth.ON_TRACK
    if percentage <= over_percentage:
        return BudgetHealth.AT_RISK
    return BudgetHealth.OVER


def budget_status(
    budget: Budget,
    days: Mapping[str, DayBucket],
    year: Optional[int] = None,
    month: Optional[int] = None,
    at_risk_percentage: Decimal = DEFAULT_AT_RISK_PERCENTAGE,
    over_percentage: Decimal = DEFAULT_OVER_PERCENTAGE,
) -> BudgetStatus:
    """Spend-vs-limit view of a budget; the percentage is not rounded."""
    spent = budget_spending(budget, days, year, month)
    percentage = _percentage(spent, budget.amount)
    return BudgetStatus(
        budget_id=budget.id,
        limit=budget.amount,
        spent=spent,
        remaining=budget.amount - spent,
        percentage=percentage,
        health=classify_budget(percentage, at_risk_percentage, over_percentage),
    )


def goal_progress(goal: SavingsGoal) -> GoalProgress:
    """
    Contribution-vs-target view of a goal.

    Only the display percentage is clamped; overshoot stays visible in
    ``percentage``.
    """
    percentage = _percentage(goal.current_amount, goal.target_amount)
    return GoalProgress(
        goal_id=goal.id,
        current=goal.current_amount,
        target=goal.target_amount,
        percentage=percentage,
        display_percentage=min(max(percentage, Decimal("0")), _HUNDRED),
    )
