"""
Ledger Store

Raw operations on the day buckets. The store knows nothing about debts,
rules or persistence; the engine wraps every call here in the mutation
pipeline.
"""

from typing import Any, Callable, Iterator, Mapping, Optional

from pydantic import ValidationError

from budget_tracker.ledger.errors import LedgerValidationError
from budget_tracker.models.ledger import DayBucket, Transaction


class LedgerStore:
    """
    Day buckets keyed by ``YYYY-MM-DD``.

    The ``days`` mapping is shared with the snapshot that owns it, so
    mutations here are visible to whatever persists the snapshot.
    Callers pass already-normalized date keys.
    """

    def __init__(self, days: Optional[dict[str, DayBucket]] = None):
        self.days = days if days is not None else {}

    def get_day_data(self, date_key: str) -> DayBucket:
        """The bucket for a date; an empty one if nothing was recorded."""
        bucket = self.days.get(date_key)
        if bucket is None:
            return DayBucket(date=date_key)
        return bucket

    def add(self, date_key: str, transaction: Transaction) -> Transaction:
        """
        Append a transaction to the list matching its type.

        Raises:
            LedgerValidationError: If the id already exists on that date
        """
        bucket = self.days.get(date_key)
        if bucket is None:
            bucket = DayBucket(date=date_key)
            self.days[date_key] = bucket

        if bucket.find(transaction.id) is not None:
            raise LedgerValidationError(
                f"Transaction {transaction.id} already exists on {date_key}"
            )

        bucket.entries_for(transaction.type).append(transaction)
        return transaction

    def remove(self, date_key: str, transaction_id: str) -> Optional[Transaction]:
        """Remove a transaction; returns it, or None if it was not there."""
        bucket = self.days.get(date_key)
        if bucket is None:
            return None

        for entries in (bucket.income, bucket.spending, bucket.transfers):
            for index, tx in enumerate(entries):
                if tx.id == transaction_id:
                    del entries[index]
                    if bucket.is_empty:
                        del self.days[date_key]
                    return tx
        return None

    def update(
        self,
        date_key: str,
        transaction_id: str,
        patch: Mapping[str, Any],
    ) -> Optional[tuple[Transaction, Transaction]]:
        """
        Patch a transaction in place.

        The patched entry is re-validated as a whole. If its type changed
        it moves to the matching list, keeping its id and date.

        Returns:
            (old, new), or None if the transaction was not found

        Raises:
            LedgerValidationError: If the patched entry is invalid
        """
        bucket = self.days.get(date_key)
        if bucket is None:
            return None
        old = bucket.find(transaction_id)
        if old is None:
            return None

        data = old.model_dump()
        data.update(patch)
        data["id"] = old.id
        try:
            new = Transaction.model_validate(data)
        except ValidationError as e:
            raise LedgerValidationError.from_pydantic(e, "transaction update")

        old_entries = bucket.entries_for(old.type)
        if new.type == old.type:
            old_entries[old_entries.index(old)] = new
        else:
            old_entries.remove(old)
            bucket.entries_for(new.type).append(new)
        return old, new

    def find(self, transaction_id: str) -> Optional[tuple[str, Transaction]]:
        """Locate a transaction by id on any date."""
        for date_key, tx in self.iter_transactions():
            if tx.id == transaction_id:
                return date_key, tx
        return None

    def iter_transactions(self) -> Iterator[tuple[str, Transaction]]:
        """Every (date_key, transaction), dates ascending."""
        for date_key in sorted(self.days):
            for tx in self.days[date_key].iter_transactions():
                yield date_key, tx

    def generated_instances(self, rule_id: str) -> list[tuple[str, Transaction]]:
        """Every materialized instance of a recurring rule."""
        return [
            (date_key, tx)
            for date_key, tx in self.iter_transactions()
            if tx.is_recurring and tx.recurring_id == rule_id
        ]

    def remove_generated(
        self,
        rule_id: str,
        keep_date: Callable[[str], bool],
    ) -> list[tuple[str, Transaction]]:
        """
        Remove instances of a rule whose date is not kept.

        Args:
            rule_id: Recurring rule the instances belong to
            keep_date: Returns True for dates whose instances stay

        Returns:
            The removed (date_key, transaction) pairs
        """
        removed = []
        for date_key, tx in self.generated_instances(rule_id):
            if keep_date(date_key):
                continue
            if self.remove(date_key, tx.id) is not None:
                removed.append((date_key, tx))
        return removed
