"""
Read-only Ledger Views

DESIGN DECISION: Reports are DETERMINISTIC functions of the ledger.
Every figure here is recomputed from the day buckets on each call;
nothing is cached and nothing is written back.

Cash-flow totals count transfers as spending, so moving money into
savings shows as cash out for the day.
"""

from datetime import date
from decimal import Decimal
from typing import Mapping, Optional

from budget_tracker.dates import DateLike, days_between, key_in_month, key_in_year, parse_date_key
from budget_tracker.ledger.balances import get_account_balance
from budget_tracker.models.ledger import Account, DayBucket
from budget_tracker.models.views import PeriodTotals

UNCATEGORIZED = "uncategorized"


def _bucket_totals(bucket: Optional[DayBucket]) -> tuple[Decimal, Decimal]:
    if bucket is None:
        return Decimal("0"), Decimal("0")
    income = sum((tx.amount for tx in bucket.income), Decimal("0"))
    spending = sum((tx.amount for tx in bucket.spending), Decimal("0"))
    transfers = sum((tx.amount for tx in bucket.transfers), Decimal("0"))
    return income, spending + transfers


def _totals(buckets) -> PeriodTotals:
    income = Decimal("0")
    spending = Decimal("0")
    for bucket in buckets:
        day_income, day_spending = _bucket_totals(bucket)
        income += day_income
        spending += day_spending
    return PeriodTotals(income=income, spending=spending, profit=income - spending)


def daily_total(days: Mapping[str, DayBucket], day: DateLike) -> PeriodTotals:
    """Income, spending and profit for one date."""
    date_key = parse_date_key(day).isoformat()
    return _totals([days.get(date_key)])


def weekly_total(
    days: Mapping[str, DayBucket],
    start: DateLike,
    end: DateLike,
) -> PeriodTotals:
    """Totals over an inclusive date range (normally Sunday to Saturday)."""
    start_date, end_date = parse_date_key(start), parse_date_key(end)
    return _totals(days.get(day.isoformat()) for day in days_between(start_date, end_date))


def monthly_total(days: Mapping[str, DayBucket], year: int, month: int) -> PeriodTotals:
    """Totals for a calendar month."""
    return _totals(
        bucket for date_key, bucket in days.items()
        if key_in_month(date_key, year, month)
    )


def spending_by_category(
    days: Mapping[str, DayBucket],
    year: int,
    month: Optional[int] = None,
) -> dict[str, Decimal]:
    """
    Spending per category id for a month, or a whole year when
    ``month`` is None. Largest first; untagged spending is grouped
    under ``"uncategorized"``. Transfers are not spending here.
    """
    totals: dict[str, Decimal] = {}
    for date_key, bucket in days.items():
        if month is None:
            if not key_in_year(date_key, year):
                continue
        elif not key_in_month(date_key, year, month):
            continue
        for tx in bucket.spending:
            key = tx.category or UNCATEGORIZED
            totals[key] = totals.get(key, Decimal("0")) + tx.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def net_worth(
    accounts: Mapping[str, Account],
    days: Mapping[str, DayBucket],
    as_of: Optional[DateLike] = None,
    today: Optional[date] = None,
) -> Decimal:
    """Asset balances minus what is owed on credit accounts."""
    total = Decimal("0")
    for account in accounts.values():
        balance = get_account_balance(days, account, as_of=as_of, today=today)
        total += -balance if account.is_credit else balance
    return total
