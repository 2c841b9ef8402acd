"""
Ledger Engine

DESIGN DECISION: There is exactly ONE mutation pipeline.
Manual entries, recurring instances, statement imports, debt payments
and goal contributions all go through the same steps:

1. Validate input at the boundary (reject before touching the store)
2. Mutate the day buckets
3. Synchronize debts linked to any credit account that was touched
4. Write an audit entry
5. Signal a change (consumed by the debounced snapshot writer)

Every operation completes fully before returning; there is no
background mutation path. Reads are pure functions over the current
snapshot and may be called freely between mutations.

Unknown ids are a no-op: the operation returns False/None and logs an
``entity_not_found`` warning instead of raising.
"""

from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from budget_tracker.audit import AuditLogger
from budget_tracker.config import LedgerSettings, get_settings
from budget_tracker.dates import DateLike
from budget_tracker.imports.statements import StatementImporter, StatementInput
from budget_tracker.ledger import aggregates
from budget_tracker.ledger.balances import get_account_balance
from budget_tracker.ledger.debts import DebtSynchronizer
from budget_tracker.ledger.errors import LedgerValidationError
from budget_tracker.ledger.recurrence import find_stale_instances, plan_materializations
from budget_tracker.ledger.store import LedgerStore
from budget_tracker.models.audit import AuditEventBuilder, AuditEventType
from budget_tracker.models.ledger import (
    Account,
    AccountType,
    Budget,
    Category,
    DayBucket,
    Debt,
    DebtPayment,
    DebtType,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    new_id,
)
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.models.views import BudgetStatus, GoalProgress, ImportResult, PeriodTotals
from budget_tracker.queries import views
from budget_tracker.validation import (
    TransactionValidator,
    require_date_key,
    require_positive_amount,
)
from budget_tracker.validation.validator import TransactionInput

ModelT = TypeVar("ModelT", bound=BaseModel)

ChangeListener = Callable[[], None]


class LedgerEngine:
    """
    The ledger and derivation engine for one user's snapshot.

    Usage:
        engine = LedgerEngine(LedgerSnapshot.fresh())
        checking = engine.add_account("Checking", AccountType.CHECKING, Decimal("1000"))
        engine.add_transaction("2024-05-01", {"type": "income", "amount": "500",
                                              "account_id": checking.id})
        engine.get_account_balance(checking.id)
    """

    def __init__(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[LedgerSettings] = None,
        audit: Optional[AuditLogger] = None,
        on_change: Optional[ChangeListener] = None,
    ):
        """
        Initialize the engine.

        Args:
            snapshot: State to operate on; a fresh ledger if None
            clock: Source of "now"; every notion of today derives from it
            settings: Ledger settings; loaded from the environment if None
            audit: Audit logger; a new one if None
            on_change: Called once after each completed mutation
        """
        self._settings = settings or get_settings().ledger
        self._snapshot = snapshot or LedgerSnapshot.fresh(self._settings.seed_default_categories)
        self._clock = clock
        self._audit = audit or AuditLogger()

        self._store = LedgerStore(self._snapshot.days)
        self._debts = DebtSynchronizer(self._snapshot, self._audit, clock)
        self._validator = TransactionValidator(clock=clock, settings=self._settings)
        self._importer = StatementImporter(settings=self._settings)

        self._listeners: list[ChangeListener] = []
        if on_change is not None:
            self._listeners.append(on_change)
        self._depth = 0
        self._pending_change = False

    # =========================================================================
    # PIPELINE PLUMBING
    # =========================================================================

    @property
    def snapshot(self) -> LedgerSnapshot:
        """The live snapshot; hand it to persistence, never mutate it."""
        return self._snapshot

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callback run after each completed mutation."""
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def today(self) -> date:
        return self._clock().date()

    def _today_key(self) -> str:
        return self.today().isoformat()

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        # Nested operations (a payment that adds a transaction) signal once
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0 and self._pending_change:
                self._pending_change = False
                for listener in list(self._listeners):
                    listener()

    def _changed(self) -> None:
        self._pending_change = True

    def _not_found(self, entity_type: str, entity_id: str, operation: str) -> None:
        self._audit.log_not_found(entity_type, entity_id, operation)

    def _rejected(self, operation: str, error: LedgerValidationError) -> LedgerValidationError:
        self._audit.log_validation_failed(
            operation,
            [issue.model_dump() for issue in error.issues],
        )
        return error

    def _build(self, model_cls: type[ModelT], fields: Mapping[str, Any], operation: str) -> ModelT:
        data = dict(fields)
        if "created_at" in model_cls.model_fields and data.get("created_at") is None:
            data["created_at"] = self._clock()
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise self._rejected(operation, LedgerValidationError.from_pydantic(e, model_cls.__name__))

    def _patched(self, model: ModelT, patch: Mapping[str, Any], operation: str) -> ModelT:
        data = model.model_dump()
        data.update(patch)
        data["id"] = model.id
        try:
            return type(model).model_validate(data)
        except ValidationError as e:
            raise self._rejected(operation, LedgerValidationError.from_pydantic(e, type(model).__name__))

    def _date_key(self, value: Optional[DateLike], operation: str) -> str:
        try:
            return require_date_key(value if value is not None else self.today())
        except LedgerValidationError as e:
            raise self._rejected(operation, e)

    def _amount(self, value: Any, operation: str) -> Decimal:
        try:
            return require_positive_amount(value)
        except LedgerValidationError as e:
            raise self._rejected(operation, e)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def add_transaction(self, day: DateLike, transaction: TransactionInput) -> Transaction:
        """
        Record a transaction on a date.

        Debts linked to any credit account the entry touches are
        synchronized before this returns.

        Raises:
            LedgerValidationError: Non-positive amount, malformed date key,
                missing transfer fields, or a duplicate id on that date
        """
        try:
            date_key, tx, result = self._validator.ensure_valid(
                day, transaction, self._snapshot.accounts
            )
        except LedgerValidationError as e:
            raise self._rejected("add_transaction", e)

        with self._mutation():
            try:
                self._store.add(date_key, tx)
            except LedgerValidationError as e:
                raise self._rejected("add_transaction", e)
            self._debts.sync_accounts(tx.account_ids)

            event = AuditEventBuilder.transaction_added(date_key, tx.id, tx.type.value, str(tx.amount))
            if result.warnings:
                event.details["warnings"] = result.warnings
            self._audit.log(event)
            self._changed()
        return tx

    def _remove(self, date_key: str, transaction_id: str, cascade: bool) -> Optional[Transaction]:
        removed = self._store.remove(date_key, transaction_id)
        if removed is None:
            return None

        touched = set(removed.account_ids)
        cascaded = []
        if cascade and removed.is_generated:
            cascaded = self._store.remove_generated(
                removed.recurring_id,
                keep_date=lambda key: key <= date_key,
            )
            for _, tx in cascaded:
                touched.update(tx.account_ids)
            self._end_series_before(removed.recurring_id, date_key)

        self._debts.sync_accounts(touched)
        self._audit.log(AuditEventBuilder.transaction_removed(date_key, transaction_id, len(cascaded)))
        self._changed()
        return removed

    def _end_series_before(self, rule_id: str, date_key: str) -> None:
        # Stop population from regenerating a series the user deleted
        rule = self._snapshot.recurring_rules.get(rule_id)
        if rule is None:
            return
        cutoff = date.fromisoformat(date_key)
        last_day = cutoff - timedelta(days=1)
        if rule.start_date and last_day < rule.start_date:
            rule.is_active = False
        elif rule.end_date is None or rule.end_date >= cutoff:
            rule.end_date = last_day
        else:
            return
        self._audit.log_entity_change(
            AuditEventType.RECURRING_SERIES_TRUNCATED,
            "recurring_rule",
            rule.id,
            {"end_date": rule.end_date.isoformat() if rule.end_date else None,
             "is_active": rule.is_active},
        )

    def remove_transaction(self, day: DateLike, transaction_id: str) -> bool:
        """
        Remove a transaction.

        Removing a recurring instance also removes every instance of the
        same rule dated after it ("this and future"); earlier instances
        are history and stay.

        Returns False if no such transaction exists on that date.
        """
        date_key = self._date_key(day, "remove_transaction")
        with self._mutation():
            removed = self._remove(date_key, transaction_id, cascade=True)
        if removed is None:
            self._not_found("transaction", transaction_id, "remove_transaction")
            return False
        return True

    def update_transaction(
        self,
        day: DateLike,
        transaction_id: str,
        patch: Mapping[str, Any],
    ) -> bool:
        """
        Patch a transaction in place.

        Debts linked to the old and new accounts are re-synchronized.

        Returns False if no such transaction exists on that date.

        Raises:
            LedgerValidationError: If the patched entry is invalid
        """
        date_key = self._date_key(day, "update_transaction")
        with self._mutation():
            try:
                change = self._store.update(date_key, transaction_id, patch)
            except LedgerValidationError as e:
                raise self._rejected("update_transaction", e)
            if change is None:
                self._not_found("transaction", transaction_id, "update_transaction")
                return False

            old, new = change
            self._debts.sync_accounts(old.account_ids | new.account_ids)
            self._audit.log(AuditEventBuilder.transaction_updated(date_key, transaction_id, sorted(patch)))
            self._changed()
        return True

    def move_transaction(
        self,
        from_day: DateLike,
        transaction_id: str,
        to_day: DateLike,
        patch: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Transaction]:
        """
        Move a transaction to another date, optionally patching it.

        A move is a remove followed by an add. A recurring instance becomes
        a standalone manual entry with a new id, and only that instance is
        removed; the rest of its series stays.

        Returns:
            The transaction as recorded on the new date, or None if the
            original was not found
        """
        from_key = self._date_key(from_day, "move_transaction")
        to_key = self._date_key(to_day, "move_transaction")

        original = self._store.get_day_data(from_key).find(transaction_id)
        if original is None:
            self._not_found("transaction", transaction_id, "move_transaction")
            return None

        data = original.model_dump()
        data.update(patch or {})
        if original.is_recurring or original.recurring_id:
            data["id"] = new_id("tx")
            data["is_recurring"] = False
            data["recurring_id"] = None
        elif from_key != to_key and self._store.get_day_data(to_key).find(original.id):
            data["id"] = new_id("tx")
        else:
            data["id"] = original.id

        # Validate before removing so a bad patch never loses the entry
        try:
            _, moved, _ = self._validator.ensure_valid(to_key, data)
        except LedgerValidationError as e:
            raise self._rejected("move_transaction", e)

        with self._mutation():
            self._remove(from_key, transaction_id, cascade=False)
            recorded = self.add_transaction(to_key, moved)
            self._audit.log(AuditEventBuilder.transaction_moved(from_key, to_key, transaction_id, recorded.id))
        return recorded

    def transfer_between_accounts(
        self,
        day: DateLike,
        from_account_id: str,
        to_account_id: str,
        amount: Any,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record a transfer between two accounts.

        Raises:
            LedgerValidationError: Same account on both sides, or a
                non-positive amount
        """
        value = self._amount(amount, "transfer_between_accounts")
        if not description:
            target = self._snapshot.accounts.get(to_account_id)
            description = f"Transfer to {target.name if target else 'account'}"
        return self.add_transaction(day, {
            "id": new_id("transfer"),
            "type": TransactionType.TRANSFER,
            "amount": value,
            "description": description,
            "account_id": from_account_id,
            "transfer_to_account_id": to_account_id,
        })

    def get_day_data(self, day: DateLike) -> DayBucket:
        """A copy of the bucket for a date; empty when nothing was recorded."""
        date_key = self._date_key(day, "get_day_data")
        return self._store.get_day_data(date_key).model_copy(deep=True)

    def iter_transactions(self) -> Iterator[tuple[str, Transaction]]:
        """Every (date_key, transaction), dates ascending."""
        for date_key, tx in self._store.iter_transactions():
            yield date_key, tx.model_copy()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    @property
    def accounts(self) -> list[Account]:
        return [account.model_copy() for account in self._snapshot.accounts.values()]

    def get_account(self, account_id: str) -> Optional[Account]:
        account = self._snapshot.accounts.get(account_id)
        return account.model_copy() if account else None

    def add_account(
        self,
        name: str,
        account_type: AccountType,
        initial_balance: Any = Decimal("0"),
        also_track_as_debt: bool = True,
    ) -> Account:
        """
        Create an account.

        A credit card also gets a linked debt unless ``also_track_as_debt``
        is False; the debt is synchronized immediately.
        """
        account = self._build(Account, {
            "name": name,
            "type": account_type,
            "initial_balance": initial_balance,
        }, "add_account")

        with self._mutation():
            self._snapshot.accounts[account.id] = account
            self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "account", account.id,
                                          {"type": account.type.value})

            if account.is_credit and also_track_as_debt:
                opening = abs(account.initial_balance)
                debt = self._build(Debt, {
                    "name": account.name,
                    "type": DebtType.CREDIT_CARD,
                    "principal_amount": opening,
                    "current_balance": opening,
                    "account_id": account.id,
                }, "add_account")
                self._snapshot.debts[debt.id] = debt
                self._debts.sync_debt(debt.id)
                self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "debt", debt.id,
                                              {"account_id": account.id})
            self._changed()
        return account

    def update_account(self, account_id: str, patch: Mapping[str, Any]) -> bool:
        """Patch an account; linked debts are re-synchronized."""
        account = self._snapshot.accounts.get(account_id)
        if account is None:
            self._not_found("account", account_id, "update_account")
            return False

        updated = self._patched(account, patch, "update_account")
        with self._mutation():
            self._snapshot.accounts[account_id] = updated
            self._debts.sync_accounts([account_id])
            self._audit.log_entity_change(AuditEventType.ENTITY_UPDATED, "account", account_id,
                                          {"fields": sorted(patch)})
            self._changed()
        return True

    def remove_account(self, account_id: str) -> bool:
        """
        Delete an account.

        Rules and goals that referenced it lose the reference and linked
        debts are detached. Ledger entries keep their account id.
        """
        if account_id not in self._snapshot.accounts:
            self._not_found("account", account_id, "remove_account")
            return False

        with self._mutation():
            del self._snapshot.accounts[account_id]
            for collection in (
                self._snapshot.recurring_rules,
                self._snapshot.savings_goals,
                self._snapshot.debts,
            ):
                for entity in collection.values():
                    if entity.account_id == account_id:
                        entity.account_id = None
            self._audit.log_entity_change(AuditEventType.ENTITY_REMOVED, "account", account_id)
            self._changed()
        return True

    def get_account_balance(self, account_id: str, as_of: Optional[DateLike] = None) -> Decimal:
        """
        Derived balance of an account as of a date (inclusive; default today).

        Unknown accounts report zero.
        """
        account = self._snapshot.accounts.get(account_id)
        if account is None:
            self._not_found("account", account_id, "get_account_balance")
            return Decimal("0")
        return get_account_balance(self._snapshot.days, account, as_of=as_of, today=self.today())

    # =========================================================================
    # RECURRING RULES
    # =========================================================================

    @property
    def recurring_rules(self) -> list[RecurringRule]:
        return [rule.model_copy(deep=True) for rule in self._snapshot.recurring_rules.values()]

    def get_recurring_rule(self, rule_id: str) -> Optional[RecurringRule]:
        rule = self._snapshot.recurring_rules.get(rule_id)
        return rule.model_copy(deep=True) if rule else None

    def add_recurring_rule(self, **fields: Any) -> RecurringRule:
        """
        Create a recurring rule and populate the current month.

        Accepts RecurringRule fields (kind, pattern, amount, description,
        category, account_id, start_date, end_date, is_active).
        """
        rule = self._build(RecurringRule, fields, "add_recurring_rule")
        with self._mutation():
            self._snapshot.recurring_rules[rule.id] = rule
            self._audit.log_entity_change(AuditEventType.RECURRING_RULE_ADDED, "recurring_rule", rule.id,
                                          {"kind": rule.kind.value, "pattern": rule.pattern.type.value})
            self._changed()
            today = self.today()
            self.populate_recurring_for_month(today.year, today.month)
        return rule

    def update_recurring_rule(self, rule_id: str, patch: Mapping[str, Any]) -> bool:
        """
        Patch a rule and propagate to its materialized instances.

        amount, description and category reach every instance. A changed
        account reaches only instances dated on or after the new account's
        creation day (or on or after today when the account is cleared),
        so history stays attributed to the account valid at the time.
        """
        rule = self._snapshot.recurring_rules.get(rule_id)
        if rule is None:
            self._not_found("recurring_rule", rule_id, "update_recurring_rule")
            return False

        updated = self._patched(rule, patch, "update_recurring_rule")

        shared = {}
        if updated.amount != rule.amount:
            shared["amount"] = updated.amount
        if updated.description != rule.description:
            shared["description"] = updated.description
        if updated.category != rule.category:
            shared["category"] = updated.category
        if updated.kind != rule.kind:
            shared["type"] = updated.transaction_type

        account_cutoff = None
        if updated.account_id != rule.account_id:
            new_account = self._snapshot.accounts.get(updated.account_id) if updated.account_id else None
            account_cutoff = new_account.created_key if new_account else self._today_key()

        with self._mutation():
            self._snapshot.recurring_rules[rule_id] = updated
            touched = {rule.account_id, updated.account_id}
            propagated = 0

            for date_key, tx in self._store.generated_instances(rule_id):
                instance_patch = dict(shared)
                if account_cutoff is not None and date_key >= account_cutoff:
                    instance_patch["account_id"] = updated.account_id
                if not instance_patch:
                    continue
                try:
                    change = self._store.update(date_key, tx.id, instance_patch)
                except LedgerValidationError as e:
                    raise self._rejected("update_recurring_rule", e)
                if change:
                    touched.update(change[0].account_ids | change[1].account_ids)
                    propagated += 1

            self._debts.sync_accounts(touched)
            self._audit.log_entity_change(AuditEventType.RECURRING_RULE_UPDATED, "recurring_rule", rule_id,
                                          {"fields": sorted(patch), "instances_updated": propagated})
            self._changed()
        return True

    def remove_recurring_rule(self, rule_id: str) -> bool:
        """
        Delete a rule and its instances dated today or later.

        Instances before today are history and stay.
        """
        if rule_id not in self._snapshot.recurring_rules:
            self._not_found("recurring_rule", rule_id, "remove_recurring_rule")
            return False

        today_key = self._today_key()
        with self._mutation():
            del self._snapshot.recurring_rules[rule_id]
            removed = self._store.remove_generated(rule_id, keep_date=lambda key: key < today_key)
            touched = set()
            for _, tx in removed:
                touched.update(tx.account_ids)
            self._debts.sync_accounts(touched)
            self._audit.log_entity_change(AuditEventType.RECURRING_RULE_REMOVED, "recurring_rule", rule_id,
                                          {"instances_removed": len(removed)})
            self._changed()
        return True

    def populate_recurring_for_month(self, year: int, month: int) -> int:
        """
        Materialize active rules' instances for a month.

        Occurrences before max(rule creation day, today) are skipped and
        existing instances are never duplicated, so calling this again is
        a no-op.

        Returns:
            Number of instances created
        """
        plan = plan_materializations(
            self._snapshot.recurring_rules.values(),
            self._snapshot.days,
            year,
            month,
            self.today(),
        )
        with self._mutation():
            for date_key, tx in plan:
                self.add_transaction(date_key, tx)
            if plan:
                self._audit.log(AuditEventBuilder.recurring_materialized(year, month, len(plan)))
        return len(plan)

    def cleanup_past_recurring_instances(self) -> int:
        """
        Remove generated instances dated before their rule was created.

        Returns:
            Number of instances removed
        """
        stale = find_stale_instances(self._snapshot.recurring_rules, self._snapshot.days)
        with self._mutation():
            touched = set()
            for date_key, tx_id in stale:
                removed = self._store.remove(date_key, tx_id)
                if removed is not None:
                    touched.update(removed.account_ids)
            if stale:
                self._debts.sync_accounts(touched)
                self._audit.log(AuditEventBuilder.stale_instances_removed(len(stale)))
                self._changed()
        return len(stale)

    def run_startup_repair(self) -> dict[str, int]:
        """
        Consistency pass run once when a session starts.

        Removes stale recurring instances, then heals debt drift.
        """
        with self._mutation():
            stale_removed = self.cleanup_past_recurring_instances()
            debts_repaired = self._debts.repair_all()
            if debts_repaired:
                self._changed()
        return {"stale_instances_removed": stale_removed, "debts_repaired": debts_repaired}

    # =========================================================================
    # DEBTS
    # =========================================================================

    @property
    def debts(self) -> list[Debt]:
        return [debt.model_copy() for debt in self._snapshot.debts.values()]

    @property
    def debt_payments(self) -> list[DebtPayment]:
        return [payment.model_copy() for payment in self._snapshot.debt_payments.values()]

    def get_debt(self, debt_id: str) -> Optional[Debt]:
        debt = self._snapshot.debts.get(debt_id)
        return debt.model_copy() if debt else None

    def add_debt(self, **fields: Any) -> Debt:
        """
        Create a debt.

        ``current_balance`` defaults to the principal. A debt linked to a
        credit account is synchronized immediately.
        """
        if fields.get("current_balance") is None:
            fields["current_balance"] = fields.get("principal_amount", Decimal("0"))
        debt = self._build(Debt, fields, "add_debt")
        with self._mutation():
            self._snapshot.debts[debt.id] = debt
            self._debts.sync_debt(debt.id)
            self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "debt", debt.id,
                                          {"account_id": debt.account_id})
            self._changed()
        return debt

    def update_debt(self, debt_id: str, patch: Mapping[str, Any]) -> bool:
        """Patch a debt; re-synchronized if it is linked to a credit account."""
        debt = self._snapshot.debts.get(debt_id)
        if debt is None:
            self._not_found("debt", debt_id, "update_debt")
            return False

        updated = self._patched(debt, patch, "update_debt")
        with self._mutation():
            self._snapshot.debts[debt_id] = updated
            self._debts.sync_debt(debt_id)
            self._audit.log_entity_change(AuditEventType.ENTITY_UPDATED, "debt", debt_id,
                                          {"fields": sorted(patch)})
            self._changed()
        return True

    def remove_debt(self, debt_id: str) -> bool:
        """Delete a debt and its payment records; ledger entries stay."""
        if debt_id not in self._snapshot.debts:
            self._not_found("debt", debt_id, "remove_debt")
            return False

        with self._mutation():
            del self._snapshot.debts[debt_id]
            orphaned = [
                payment_id for payment_id, payment in self._snapshot.debt_payments.items()
                if payment.debt_id == debt_id
            ]
            for payment_id in orphaned:
                del self._snapshot.debt_payments[payment_id]
            self._audit.log_entity_change(AuditEventType.ENTITY_REMOVED, "debt", debt_id,
                                          {"payments_removed": len(orphaned)})
            self._changed()
        return True

    def add_debt_payment(
        self,
        debt_id: str,
        amount: Any,
        day: Optional[DateLike] = None,
        account_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[DebtPayment]:
        """
        Record a payment against a debt.

        Debt linked to a credit account:
            with a source account, a transfer from it to the card;
            without one, a payment (income) entry on the card.
            The synchronizer then derives the new balance.
        Unlinked debt:
            the balance drops by the amount (floored at zero) and, with a
            source account, a plain spending entry is recorded.

        Returns None if the debt does not exist.
        """
        debt = self._snapshot.debts.get(debt_id)
        if debt is None:
            self._not_found("debt", debt_id, "add_debt_payment")
            return None

        value = self._amount(amount, "add_debt_payment")
        date_key = self._date_key(day, "add_debt_payment")
        payment_id = new_id("debt-payment")
        label = description or f"Debt payment: {debt.name}"
        linked = self._debts.derived_balance(debt) is not None

        with self._mutation():
            tx = None
            if linked and account_id:
                tx = self.add_transaction(date_key, {
                    "id": f"{payment_id}-transfer",
                    "type": TransactionType.TRANSFER,
                    "amount": value,
                    "description": label,
                    "account_id": account_id,
                    "transfer_to_account_id": debt.account_id,
                })
            elif linked:
                tx = self.add_transaction(date_key, {
                    "id": f"{payment_id}-tx",
                    "type": TransactionType.INCOME,
                    "amount": value,
                    "description": label,
                    "account_id": debt.account_id,
                })
            else:
                if account_id:
                    tx = self.add_transaction(date_key, {
                        "id": f"{payment_id}-tx",
                        "type": TransactionType.SPENDING,
                        "amount": value,
                        "description": label,
                        "account_id": account_id,
                    })
                self._debts.apply_payment(debt, value)

            payment = DebtPayment(
                id=payment_id,
                debt_id=debt_id,
                amount=value,
                date=date_key,
                description=description,
                account_id=account_id,
                transaction_id=tx.id if tx else None,
            )
            self._snapshot.debt_payments[payment.id] = payment
            self._audit.log(AuditEventBuilder.debt_payment_recorded(payment.id, debt_id, str(value)))
            self._changed()
        return payment

    def remove_debt_payment(self, payment_id: str) -> bool:
        """
        Delete a payment, reversing both its ledger entry and its effect
        on the debt balance.
        """
        payment = self._snapshot.debt_payments.get(payment_id)
        if payment is None:
            self._not_found("debt_payment", payment_id, "remove_debt_payment")
            return False

        with self._mutation():
            if payment.transaction_id:
                self._remove(payment.date, payment.transaction_id, cascade=False)

            debt = self._snapshot.debts.get(payment.debt_id)
            if debt is not None:
                if self._debts.derived_balance(debt) is not None:
                    self._debts.sync_debt(debt.id)
                else:
                    self._debts.reverse_payment(debt, payment.amount)

            del self._snapshot.debt_payments[payment_id]
            self._audit.log_entity_change(AuditEventType.DEBT_PAYMENT_REMOVED, "debt_payment", payment_id,
                                          {"debt_id": payment.debt_id, "amount": str(payment.amount)})
            self._changed()
        return True

    def get_debt_balance(self, debt_id: str) -> Decimal:
        debt = self._snapshot.debts.get(debt_id)
        if debt is None:
            self._not_found("debt", debt_id, "get_debt_balance")
            return Decimal("0")
        return debt.current_balance

    def get_total_debt(self) -> Decimal:
        return sum((debt.current_balance for debt in self._snapshot.debts.values()), Decimal("0"))

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    @property
    def categories(self) -> list[Category]:
        return [category.model_copy() for category in self._snapshot.categories.values()]

    def add_category(self, **fields: Any) -> Category:
        category = self._build(Category, fields, "add_category")
        with self._mutation():
            self._snapshot.categories[category.id] = category
            self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "category", category.id)
            self._changed()
        return category

    def update_category(self, category_id: str, patch: Mapping[str, Any]) -> bool:
        category = self._snapshot.categories.get(category_id)
        if category is None:
            self._not_found("category", category_id, "update_category")
            return False
        updated = self._patched(category, patch, "update_category")
        with self._mutation():
            self._snapshot.categories[category_id] = updated
            self._audit.log_entity_change(AuditEventType.ENTITY_UPDATED, "category", category_id,
                                          {"fields": sorted(patch)})
            self._changed()
        return True

    def remove_category(self, category_id: str) -> bool:
        """Delete a category; entries and budgets keep the id they were tagged with."""
        if category_id not in self._snapshot.categories:
            self._not_found("category", category_id, "remove_category")
            return False
        with self._mutation():
            del self._snapshot.categories[category_id]
            self._audit.log_entity_change(AuditEventType.ENTITY_REMOVED, "category", category_id)
            self._changed()
        return True

    # =========================================================================
    # BUDGETS
    # =========================================================================

    @property
    def budgets(self) -> list[Budget]:
        return [budget.model_copy() for budget in self._snapshot.budgets.values()]

    def add_budget(self, **fields: Any) -> Budget:
        budget = self._build(Budget, fields, "add_budget")
        with self._mutation():
            self._snapshot.budgets[budget.id] = budget
            self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "budget", budget.id,
                                          {"category_id": budget.category_id})
            self._changed()
        return budget

    def update_budget(self, budget_id: str, patch: Mapping[str, Any]) -> bool:
        budget = self._snapshot.budgets.get(budget_id)
        if budget is None:
            self._not_found("budget", budget_id, "update_budget")
            return False
        updated = self._patched(budget, patch, "update_budget")
        with self._mutation():
            self._snapshot.budgets[budget_id] = updated
            self._audit.log_entity_change(AuditEventType.ENTITY_UPDATED, "budget", budget_id,
                                          {"fields": sorted(patch)})
            self._changed()
        return True

    def remove_budget(self, budget_id: str) -> bool:
        if budget_id not in self._snapshot.budgets:
            self._not_found("budget", budget_id, "remove_budget")
            return False
        with self._mutation():
            del self._snapshot.budgets[budget_id]
            self._audit.log_entity_change(AuditEventType.ENTITY_REMOVED, "budget", budget_id)
            self._changed()
        return True

    def get_budget_spending(
        self,
        budget_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Decimal:
        budget = self._snapshot.budgets.get(budget_id)
        if budget is None:
            self._not_found("budget", budget_id, "get_budget_spending")
            return Decimal("0")
        return aggregates.budget_spending(budget, self._snapshot.days, year, month)

    def get_budget_status(
        self,
        budget_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Optional[BudgetStatus]:
        """Spend-vs-limit view; None for an unknown budget."""
        budget = self._snapshot.budgets.get(budget_id)
        if budget is None:
            self._not_found("budget", budget_id, "get_budget_status")
            return None
        return aggregates.budget_status(
            budget,
            self._snapshot.days,
            year,
            month,
            at_risk_percentage=Decimal(str(self._settings.budget_at_risk_percentage)),
            over_percentage=Decimal(str(self._settings.budget_over_percentage)),
        )

    # =========================================================================
    # SAVINGS GOALS
    # =========================================================================

    @property
    def savings_goals(self) -> list[SavingsGoal]:
        return [goal.model_copy() for goal in self._snapshot.savings_goals.values()]

    def add_savings_goal(self, **fields: Any) -> SavingsGoal:
        """Create a goal; contributions start at zero unless given."""
        goal = self._build(SavingsGoal, fields, "add_savings_goal")
        with self._mutation():
            self._snapshot.savings_goals[goal.id] = goal
            self._audit.log_entity_change(AuditEventType.ENTITY_ADDED, "savings_goal", goal.id)
            self._changed()
        return goal

    def update_savings_goal(self, goal_id: str, patch: Mapping[str, Any]) -> bool:
        goal = self._snapshot.savings_goals.get(goal_id)
        if goal is None:
            self._not_found("savings_goal", goal_id, "update_savings_goal")
            return False
        updated = self._patched(goal, patch, "update_savings_goal")
        with self._mutation():
            self._snapshot.savings_goals[goal_id] = updated
            self._audit.log_entity_change(AuditEventType.ENTITY_UPDATED, "savings_goal", goal_id,
                                          {"fields": sorted(patch)})
            self._changed()
        return True

    def remove_savings_goal(self, goal_id: str) -> bool:
        if goal_id not in self._snapshot.savings_goals:
            self._not_found("savings_goal", goal_id, "remove_savings_goal")
            return False
        with self._mutation():
            del self._snapshot.savings_goals[goal_id]
            self._audit.log_entity_change(AuditEventType.ENTITY_REMOVED, "savings_goal", goal_id)
            self._changed()
        return True

    def add_to_savings_goal(
        self,
        goal_id: str,
        amount: Any,
        day: Optional[DateLike] = None,
        source_account_id: Optional[str] = None,
    ) -> bool:
        """
        Contribute to a goal.

        With a source account the contribution is a real ledger entry: a
        transfer into the goal's account, or spending from the source when
        the goal has no account.
        """
        goal = self._snapshot.savings_goals.get(goal_id)
        if goal is None:
            self._not_found("savings_goal", goal_id, "add_to_savings_goal")
            return False

        value = self._amount(amount, "add_to_savings_goal")
        date_key = self._date_key(day, "add_to_savings_goal")
        label = f"Savings goal: {goal.name}"

        with self._mutation():
            tx = None
            if source_account_id:
                if goal.account_id:
                    tx = self.transfer_between_accounts(
                        date_key, source_account_id, goal.account_id, value, label
                    )
                else:
                    tx = self.add_transaction(date_key, {
                        "id": new_id("savings-goal"),
                        "type": TransactionType.SPENDING,
                        "amount": value,
                        "description": label,
                        "account_id": source_account_id,
                    })
            goal.current_amount = goal.current_amount + value
            self._audit.log(AuditEventBuilder.goal_contribution(goal_id, str(value), tx.id if tx else None))
            self._changed()
        return True

    def get_goal_progress(self, goal_id: str) -> Optional[GoalProgress]:
        """Contribution-vs-target view; None for an unknown goal."""
        goal = self._snapshot.savings_goals.get(goal_id)
        if goal is None:
            self._not_found("savings_goal", goal_id, "get_goal_progress")
            return None
        return aggregates.goal_progress(goal)

    # =========================================================================
    # PERIOD TOTALS AND REPORTS
    # =========================================================================

    def get_daily_total(self, day: DateLike) -> PeriodTotals:
        return views.daily_total(self._snapshot.days, self._date_key(day, "get_daily_total"))

    def get_weekly_total(self, start: DateLike, end: DateLike) -> PeriodTotals:
        return views.weekly_total(
            self._snapshot.days,
            self._date_key(start, "get_weekly_total"),
            self._date_key(end, "get_weekly_total"),
        )

    def get_monthly_total(self, year: int, month: int) -> PeriodTotals:
        return views.monthly_total(self._snapshot.days, year, month)

    def get_spending_by_category(self, year: int, month: Optional[int] = None) -> dict[str, Decimal]:
        return views.spending_by_category(self._snapshot.days, year, month)

    def get_net_worth(self, as_of: Optional[DateLike] = None) -> Decimal:
        return views.net_worth(self._snapshot.accounts, self._snapshot.days, as_of=as_of, today=self.today())

    # =========================================================================
    # STATEMENT IMPORT
    # =========================================================================

    def import_statements(
        self,
        lines: Iterable[StatementInput],
        account_id: Optional[str] = None,
    ) -> ImportResult:
        """
        Import candidate lines from a parsed bank statement.

        Duplicates are skipped and invalid lines are reported; neither
        raises. Accepted lines go through ``add_transaction``.
        """
        with self._mutation():
            result = self._importer.import_lines(
                lines,
                self._snapshot.days,
                self._snapshot.recurring_rules.values(),
                add=self.add_transaction,
                account_id=account_id,
            )
            self._audit.log(AuditEventBuilder.statement_imported(
                result.added, result.skipped, len(result.errors)
            ))
        return result
