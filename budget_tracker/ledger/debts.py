"""
Debt Synchronizer

Keeps a debt's ``current_balance`` equal to the absolute derived balance
of its linked credit-type account. Synchronization is an explicit call
made at the end of every mutation that could touch a linked account.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from budget_tracker.audit import AuditLogger
from budget_tracker.ledger.balances import get_account_balance
from budget_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_tracker.models.ledger import Debt
from budget_tracker.models.snapshot import LedgerSnapshot


class DebtSynchronizer:
    """Derives linked debt balances from the ledger."""

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        audit: AuditLogger,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._snapshot = snapshot
        self._audit = audit
        self._clock = clock

    def derived_balance(self, debt: Debt) -> Optional[Decimal]:
        """
        Absolute balance of the debt's linked credit account.

        None when the debt is unlinked, or linked to something that is not
        a credit-type account; such debts are tracked by payment deltas.
        """
        if not debt.account_id:
            return None
        account = self._snapshot.accounts.get(debt.account_id)
        if account is None or not account.is_credit:
            return None
        balance = get_account_balance(
            self._snapshot.days,
            account,
            today=self._clock().date(),
        )
        return abs(balance)

    def _sync(self, debt: Debt) -> Optional[tuple[Decimal, Decimal]]:
        derived = self.derived_balance(debt)
        if derived is None or derived == debt.current_balance:
            return None
        stored = debt.current_balance
        debt.current_balance = derived
        return stored, derived

    def sync_debt(self, debt_id: str) -> bool:
        """
        Bring one debt in line with its linked account.

        Returns True if the stored balance changed.
        """
        debt = self._snapshot.debts.get(debt_id)
        if debt is None:
            return False
        change = self._sync(debt)
        if change is None:
            return False
        self._audit.log(AuditEvent(
            event_type=AuditEventType.DEBT_SYNCED,
            severity=AuditSeverity.DEBUG,
            entity_type="debt",
            entity_id=debt.id,
            description="Debt balance synchronized with linked account",
            details={"previous": str(change[0]), "current": str(change[1])},
        ))
        return True

    def linked_debts(self, account_ids: Iterable[str]) -> list[Debt]:
        """Debts linked to any of the given accounts."""
        wanted = {account_id for account_id in account_ids if account_id}
        return [
            debt for debt in self._snapshot.debts.values()
            if debt.account_id and debt.account_id in wanted
        ]

    def sync_accounts(self, account_ids: Iterable[str]) -> int:
        """Sync every debt linked to the given accounts; returns how many changed."""
        return sum(1 for debt in self.linked_debts(account_ids) if self.sync_debt(debt.id))

    def repair_all(self) -> int:
        """
        Heal drift left by earlier inconsistent writes.

        Run once at startup. Each correction is logged as a repair, never
        raised.
        """
        repaired = 0
        for debt in self._snapshot.debts.values():
            change = self._sync(debt)
            if change is None:
                continue
            repaired += 1
            self._audit.log_debt_repaired(debt.id, str(change[0]), str(change[1]))
        return repaired

    @staticmethod
    def apply_payment(debt: Debt, amount: Decimal) -> None:
        """Reduce an unlinked debt by a payment, never below zero."""
        debt.current_balance = max(Decimal("0"), debt.current_balance - amount)

    @staticmethod
    def reverse_payment(debt: Debt, amount: Decimal) -> None:
        """
        Undo a payment on an unlinked debt.

        Adds back the full payment, even when applying it was floored at zero.
        """
        debt.current_balance = debt.current_balance + amount
