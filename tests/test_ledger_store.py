"""Tests for the raw day-bucket store."""

import pytest
from decimal import Decimal

from budget_tracker.ledger.errors import LedgerValidationError
from budget_tracker.ledger.store import LedgerStore
from budget_tracker.models.ledger import Transaction, TransactionType


def _tx(tx_id: str, tx_type: TransactionType = TransactionType.SPENDING, **fields) -> Transaction:
    return Transaction(id=tx_id, type=tx_type, amount=Decimal(fields.pop("amount", "10")), **fields)


class TestLedgerStore:
    """Tests for add/remove/update on day buckets."""

    def test_missing_day_reads_as_empty(self):
        """Test an absent bucket is equivalent to an empty one."""
        store = LedgerStore()
        bucket = store.get_day_data("2026-10-15")
        assert bucket.is_empty
        assert "2026-10-15" not in store.days

    def test_add_routes_by_type(self):
        """Test entries land in the list matching their type."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a", TransactionType.INCOME))
        store.add("2026-10-15", _tx("b"))
        bucket = store.get_day_data("2026-10-15")
        assert [tx.id for tx in bucket.income] == ["a"]
        assert [tx.id for tx in bucket.spending] == ["b"]

    def test_add_duplicate_id_rejected(self):
        """Test ids are unique within a date."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a"))
        with pytest.raises(LedgerValidationError, match="already exists"):
            store.add("2026-10-15", _tx("a"))

    def test_same_id_on_other_date_allowed(self):
        """Test uniqueness is per date, not global."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a"))
        store.add("2026-10-16", _tx("a"))
        assert len(list(store.iter_transactions())) == 2

    def test_remove_drops_empty_bucket(self):
        """Test removing the last entry removes the bucket."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a"))
        removed = store.remove("2026-10-15", "a")
        assert removed.id == "a"
        assert "2026-10-15" not in store.days

    def test_remove_unknown_returns_none(self):
        """Test removing an unknown id is a no-op."""
        store = LedgerStore()
        assert store.remove("2026-10-15", "nope") is None

    def test_update_changes_type_and_list(self):
        """Test a type change moves the entry between lists."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a"))
        old, new = store.update("2026-10-15", "a", {"type": TransactionType.INCOME})
        bucket = store.get_day_data("2026-10-15")
        assert old.type == TransactionType.SPENDING
        assert new.type == TransactionType.INCOME
        assert bucket.spending == []
        assert bucket.income[0].id == "a"

    def test_update_revalidates(self):
        """Test a patch that breaks the invariants is rejected."""
        store = LedgerStore()
        store.add("2026-10-15", _tx("a"))
        with pytest.raises(LedgerValidationError):
            store.update("2026-10-15", "a", {"amount": Decimal("-1")})
        assert store.get_day_data("2026-10-15").spending[0].amount == Decimal("10")

    def test_iter_transactions_sorted_by_date(self):
        """Test iteration walks dates in calendar order."""
        store = LedgerStore()
        store.add("2026-11-01", _tx("late"))
        store.add("2026-09-30", _tx("early"))
        assert [key for key, _ in store.iter_transactions()] == ["2026-09-30", "2026-11-01"]

    def test_remove_generated_respects_keep(self):
        """Test only instances on dropped dates are removed."""
        store = LedgerStore()
        for key in ("2026-10-15", "2026-11-15", "2026-12-15"):
            store.add(key, _tx(f"r-{key}", is_recurring=True, recurring_id="r"))
        store.add("2026-11-15", _tx("manual"))

        removed = store.remove_generated("r", keep_date=lambda key: key < "2026-11-15")

        assert [key for key, _ in removed] == ["2026-11-15", "2026-12-15"]
        assert store.get_day_data("2026-11-15").spending[0].id == "manual"
        assert store.find("r-2026-10-15") is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
