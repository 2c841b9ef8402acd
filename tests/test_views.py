"""Tests for period totals, category breakdown and net worth."""

import pytest
from decimal import Decimal

from budget_tracker.models.ledger import AccountType
from budget_tracker.queries.views import UNCATEGORIZED


@pytest.fixture
def populated(engine):
    """A small October: pay, groceries, a transfer and a card purchase."""
    checking = engine.add_account("Checking", AccountType.CHECKING, Decimal("1000"))
    savings = engine.add_account("Savings", AccountType.SAVINGS)
    card = engine.add_account("Visa", AccountType.CREDIT_CARD)

    engine.add_transaction("2026-10-15", {"type": "income", "amount": "2000", "account_id": checking.id})
    engine.add_transaction("2026-10-15", {"type": "spending", "amount": "80",
                                          "category": "cat-exp-food", "account_id": checking.id})
    engine.add_transaction("2026-10-17", {"type": "spending", "amount": "30", "account_id": card.id})
    engine.add_transaction("2026-10-18", {"type": "spending", "amount": "120",
                                          "category": "cat-exp-bills", "account_id": checking.id})
    engine.transfer_between_accounts("2026-10-16", checking.id, savings.id, "500")
    engine.add_transaction("2026-11-01", {"type": "spending", "amount": "5", "category": "cat-exp-food"})
    return engine, checking, savings, card


class TestPeriodTotals:
    """Daily, weekly and monthly cash flow."""

    def test_daily_total(self, populated):
        """Test a single day's income, spending and profit."""
        engine = populated[0]
        totals = engine.get_daily_total("2026-10-15")
        assert totals.income == Decimal("2000")
        assert totals.spending == Decimal("80")
        assert totals.profit == Decimal("1920")

    def test_transfers_count_as_spending(self, populated):
        """Test a transfer day shows cash out."""
        engine = populated[0]
        assert engine.get_daily_total("2026-10-16").spending == Decimal("500")

    def test_empty_day(self, populated):
        """Test a day with nothing recorded totals zero."""
        engine = populated[0]
        totals = engine.get_daily_total("2026-10-20")
        assert (totals.income, totals.spending, totals.profit) == (0, 0, 0)

    def test_weekly_total_is_inclusive(self, populated):
        """Test the week range includes both ends."""
        engine = populated[0]
        totals = engine.get_weekly_total("2026-10-11", "2026-10-17")
        assert totals.income == Decimal("2000")
        assert totals.spending == Decimal("610")

    def test_monthly_total(self, populated):
        """Test the month excludes other months."""
        engine = populated[0]
        totals = engine.get_monthly_total(2026, 10)
        assert totals.spending == Decimal("730")
        assert totals.profit == Decimal("1270")


class TestSpendingByCategory:
    """Category breakdowns."""

    def test_month_breakdown_sorted(self, populated):
        """Test largest category first and untagged grouped."""
        engine = populated[0]
        breakdown = engine.get_spending_by_category(2026, 10)
        assert list(breakdown) == ["cat-exp-bills", "cat-exp-food", UNCATEGORIZED]
        assert breakdown[UNCATEGORIZED] == Decimal("30")

    def test_year_breakdown(self, populated):
        """Test a whole-year breakdown includes every month."""
        engine = populated[0]
        assert engine.get_spending_by_category(2026)["cat-exp-food"] == Decimal("85")


class TestNetWorth:
    """Assets minus credit balances."""

    def test_net_worth(self, populated):
        """Test the card balance is subtracted."""
        engine, checking, savings, card = populated
        # checking 1000 + 2000 - 80 - 500 - 120, savings 500, card owes 30
        assert engine.get_net_worth("2026-10-31") == Decimal("2770")

    def test_net_worth_as_of(self, populated):
        """Test net worth respects the cut-off date."""
        engine = populated[0]
        assert engine.get_net_worth("2026-10-15") == Decimal("2920")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
