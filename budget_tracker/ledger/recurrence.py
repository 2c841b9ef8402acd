"""
Recurrence Engine

Pure expansion of recurrence patterns into calendar dates, plus planning
of which instances a population pass should materialize. Nothing here
writes to the ledger; the engine feeds the plan through the normal
``add_transaction`` pipeline.
"""

from datetime import date, timedelta
from typing import Iterable, Mapping, Optional

from budget_tracker.dates import days_between, month_bounds, sunday_based_weekday
from budget_tracker.models.ledger import (
    DayBucket,
    RecurrenceDayType,
    RecurrencePattern,
    RecurrenceType,
    RecurringRule,
    Transaction,
)

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

QUARTER_START_MONTHS = (1, 4, 7, 10)
SEMIANNUAL_MONTHS = (1, 7)

# Longest gap between two occurrences of any pattern is a year
_NEXT_OCCURRENCE_SEARCH_MONTHS = 25


def _stepped(first: date, last: date, step_days: int) -> list[date]:
    result = []
    current = first
    while current <= last:
        result.append(current)
        current += timedelta(days=step_days)
    return result


def _day_in_month(day_value: Optional[int], year: int, month: int) -> date:
    # Missing, zero or -1 anchors fall on the last day
    first, last = month_bounds(year, month)
    if not day_value or day_value < 0:
        return last
    return first.replace(day=min(day_value, last.day))


def _monthly_date(
    pattern: RecurrencePattern,
    year: int,
    month: int,
    start_date: Optional[date],
) -> date:
    first, last = month_bounds(year, month)
    if pattern.day_type == RecurrenceDayType.LAST_DAY_OF_MONTH:
        return last
    if pattern.day_type == RecurrenceDayType.DAY_OF_MONTH and pattern.day_value is not None:
        return _day_in_month(pattern.day_value, year, month)
    anchor = start_date.day if start_date else 1
    return first.replace(day=min(anchor, last.day))


def occurrences_in_month(
    pattern: RecurrencePattern,
    year: int,
    month: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[date]:
    """
    Every date in a month the pattern falls on, ascending.

    Results are bounded by ``[start_date, end_date]`` inclusive.
    """
    first, last = month_bounds(year, month)
    if end_date and end_date < first:
        return []
    if start_date and start_date > last:
        return []

    candidates: list[date] = []
    kind = pattern.type

    if kind == RecurrenceType.DAILY:
        candidates = _stepped(first, last, pattern.interval or 1)

    elif kind == RecurrenceType.WEEKLY:
        if pattern.day_type == RecurrenceDayType.DAY_OF_WEEK and pattern.day_value is not None:
            candidates = [
                day for day in days_between(first, last)
                if sunday_based_weekday(day) == pattern.day_value
            ]
        else:
            candidates = _stepped(first, last, 7 * (pattern.interval or 1))

    elif kind == RecurrenceType.BIWEEKLY:
        candidates = _stepped(first, last, 14)

    elif kind == RecurrenceType.MONTHLY:
        candidates = [_monthly_date(pattern, year, month, start_date)]

    elif kind == RecurrenceType.QUARTERLY:
        if month in QUARTER_START_MONTHS:
            candidates = [_day_in_month(pattern.day_value, year, month)]

    elif kind == RecurrenceType.SEMIANNUAL:
        if month in SEMIANNUAL_MONTHS:
            candidates = [_day_in_month(pattern.day_value, year, month)]

    elif kind == RecurrenceType.ANNUAL:
        if pattern.day_value and month == pattern.day_value:
            candidates = [first]

    return [
        day for day in candidates
        if (start_date is None or day >= start_date)
        and (end_date is None or day <= end_date)
    ]


def next_occurrence(
    pattern: RecurrencePattern,
    from_date: date,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Optional[date]:
    """
    First occurrence strictly after ``from_date``.

    Read off the same per-month grid that materialization uses, so the
    answer is always a date populate_recurring_for_month would create.
    Interval rules restart their step at the start of each month.

    Returns None when the pattern has ended or never falls in the
    search horizon.
    """
    if end_date and from_date >= end_date:
        return None

    year, month = from_date.year, from_date.month
    for _ in range(_NEXT_OCCURRENCE_SEARCH_MONTHS):
        for day in occurrences_in_month(pattern, year, month, start_date, end_date):
            if day > from_date:
                return day
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return None


def describe_pattern(pattern: RecurrencePattern) -> str:
    """Human-readable label for a pattern."""
    kind = pattern.type
    interval = pattern.interval or 1

    if kind == RecurrenceType.DAILY:
        return f"Every {interval} days" if interval > 1 else "Daily"

    if kind == RecurrenceType.WEEKLY:
        if pattern.day_type == RecurrenceDayType.DAY_OF_WEEK and pattern.day_value is not None:
            return f"Every {WEEKDAY_NAMES[pattern.day_value]}"
        return f"Every {interval} weeks" if interval > 1 else "Weekly"

    if kind == RecurrenceType.BIWEEKLY:
        return "Bi-weekly (every 2 weeks)"

    if kind == RecurrenceType.MONTHLY:
        if pattern.day_type == RecurrenceDayType.LAST_DAY_OF_MONTH:
            return "Last day of each month"
        if pattern.day_type == RecurrenceDayType.DAY_OF_MONTH and pattern.day_value is not None:
            if pattern.day_value == -1:
                return "Last day of each month"
            return f"Day {pattern.day_value} of each month"
        return f"Every {interval} months" if interval > 1 else "Monthly"

    if kind == RecurrenceType.QUARTERLY:
        return "Quarterly (every 3 months)"

    if kind == RecurrenceType.SEMIANNUAL:
        return "Semi-annually (every 6 months)"

    return "Annually (once per year)"


def instance_exists(rule: RecurringRule, bucket: Optional[DayBucket], date_key: str) -> bool:
    """Whether the rule already has an instance on that date."""
    if bucket is None:
        return False
    instance_id = rule.instance_id(date_key)
    return any(
        tx.recurring_id == rule.id or tx.id == instance_id
        for tx in bucket.iter_transactions()
    )


def build_instance(rule: RecurringRule, date_key: str) -> Transaction:
    """The transaction a rule materializes on a date."""
    return Transaction(
        id=rule.instance_id(date_key),
        type=rule.transaction_type,
        amount=rule.amount,
        description=rule.description,
        account_id=rule.account_id,
        category=rule.category,
        is_recurring=True,
        recurring_id=rule.id,
    )


def plan_materializations(
    rules: Iterable[RecurringRule],
    days: Mapping[str, DayBucket],
    year: int,
    month: int,
    today: date,
) -> list[tuple[str, Transaction]]:
    """
    Instances a population pass for one month should add.

    Inactive rules are skipped, and so is every occurrence before
    ``max(rule creation day, today)``, so a new rule never back-fills the
    past. Occurrences that already have an instance are skipped, which
    makes repeated passes a no-op.
    """
    planned = []
    for rule in rules:
        if not rule.is_active:
            continue
        min_date = max(rule.created_at.date(), today)
        for day in occurrences_in_month(rule.pattern, year, month, rule.start_date, rule.end_date):
            if day < min_date:
                continue
            date_key = day.isoformat()
            if instance_exists(rule, days.get(date_key), date_key):
                continue
            planned.append((date_key, build_instance(rule, date_key)))
    return planned


def find_stale_instances(
    rules: Mapping[str, RecurringRule],
    days: Mapping[str, DayBucket],
) -> list[tuple[str, str]]:
    """
    Generated instances dated before their rule was created.

    Only entries carrying the rule's own instance id count; imported
    entries linked to a rule are history and stay. Instances whose rule
    no longer exists are left alone.

    Returns:
        (date_key, transaction_id) pairs
    """
    stale = []
    for date_key in sorted(days):
        for tx in days[date_key].iter_transactions():
            if not tx.is_generated:
                continue
            rule = rules.get(tx.recurring_id)
            if rule is None:
                continue
            if tx.id != rule.instance_id(date_key):
                continue
            if date_key < rule.created_at.date().isoformat():
                stale.append((date_key, tx.id))
    return stale
