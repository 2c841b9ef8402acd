"""
Tests for Budget Tracker models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Engine tests drive the public LedgerEngine API with a pinned clock
3. No real API calls in tests (in-memory storage only)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from pydantic import ValidationError

from budget_tracker.models.ledger import (
    Account,
    AccountType,
    Budget,
    DayBucket,
    Debt,
    RecurrenceDayType,
    RecurrencePattern,
    RecurrenceType,
    RecurringKind,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    default_categories,
)
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModel:
    """Tests for the ledger event model."""

    def test_transaction_creation(self):
        """Test a plain spending entry."""
        tx = Transaction(type=TransactionType.SPENDING, amount=Decimal("12.50"), description="Lunch")
        assert tx.amount == Decimal("12.50")
        assert tx.id.startswith("tx-")
        assert not tx.is_generated

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from descriptions."""
        tx = Transaction(type=TransactionType.INCOME, amount=Decimal("1"), description="  Pay  ")
        assert tx.description == "Pay"

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(type=TransactionType.SPENDING, amount=Decimal("0"))
        with pytest.raises(ValueError):
            Transaction(type=TransactionType.SPENDING, amount=Decimal("-5"))

    def test_transaction_rejects_sub_cent_amount(self):
        """Test that amounts finer than a cent are rejected."""
        with pytest.raises(ValueError):
            Transaction(type=TransactionType.SPENDING, amount=Decimal("1.005"))

    def test_transfer_requires_both_accounts(self):
        """Test transfer field invariant."""
        with pytest.raises(ValueError, match="both account_id and transfer_to_account_id"):
            Transaction(type=TransactionType.TRANSFER, amount=Decimal("10"), account_id="a")

    def test_transfer_rejects_same_account(self):
        """Test a transfer cannot target its own source."""
        with pytest.raises(ValueError, match="own source account"):
            Transaction(
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                account_id="a",
                transfer_to_account_id="a",
            )

    def test_non_transfer_rejects_destination(self):
        """Test only transfers may name a destination account."""
        with pytest.raises(ValueError, match="Only transfers"):
            Transaction(
                type=TransactionType.SPENDING,
                amount=Decimal("10"),
                account_id="a",
                transfer_to_account_id="b",
            )

    def test_account_ids(self):
        """Test account_ids covers both sides of a transfer."""
        tx = Transaction(
            type=TransactionType.TRANSFER,
            amount=Decimal("10"),
            account_id="a",
            transfer_to_account_id="b",
        )
        assert tx.account_ids == {"a", "b"}


class TestDayBucket:
    """Tests for the per-date container."""

    def test_rejects_malformed_date(self):
        """Test date keys must be real YYYY-MM-DD dates."""
        with pytest.raises(ValueError):
            DayBucket(date="2026-02-30")
        with pytest.raises(ValueError):
            DayBucket(date="2026-2-3")

    def test_rejects_duplicate_ids(self):
        """Test transaction ids are unique within a bucket."""
        tx = Transaction(id="dup", type=TransactionType.SPENDING, amount=Decimal("1"))
        with pytest.raises(ValueError, match="Duplicate transaction id"):
            DayBucket(date="2026-10-15", spending=[tx, tx])

    def test_entries_for_routes_by_type(self):
        """Test each type maps to its own list."""
        bucket = DayBucket(date="2026-10-15")
        assert bucket.entries_for(TransactionType.INCOME) is bucket.income
        assert bucket.entries_for(TransactionType.SPENDING) is bucket.spending
        assert bucket.entries_for(TransactionType.TRANSFER) is bucket.transfers
        assert bucket.is_empty


class TestRuleModels:
    """Tests for recurring rules and their patterns."""

    def test_day_of_week_requires_weekday(self):
        """Test weekday anchors must be 0-6."""
        with pytest.raises(ValueError):
            RecurrencePattern(
                type=RecurrenceType.WEEKLY,
                day_type=RecurrenceDayType.DAY_OF_WEEK,
                day_value=7,
            )

    def test_day_of_month_rejects_zero(self):
        """Test day-of-month anchors cannot be 0."""
        with pytest.raises(ValueError):
            RecurrencePattern(
                type=RecurrenceType.MONTHLY,
                day_type=RecurrenceDayType.DAY_OF_MONTH,
                day_value=0,
            )

    def test_rule_end_before_start_rejected(self):
        """Test end_date cannot precede start_date."""
        with pytest.raises(ValueError, match="end_date cannot be before start_date"):
            RecurringRule(
                kind=RecurringKind.EXPENSE,
                pattern=RecurrencePattern(type=RecurrenceType.DAILY),
                amount=Decimal("5"),
                description="Coffee",
                start_date=date(2026, 10, 10),
                end_date=date(2026, 10, 1),
            )

    def test_rule_instance_id_and_type(self):
        """Test the deterministic instance id and the generated type."""
        rule = RecurringRule(
            id="recurring-rent",
            kind=RecurringKind.INCOME,
            pattern=RecurrencePattern(type=RecurrenceType.MONTHLY),
            amount=Decimal("5"),
            description="Rent received",
        )
        assert rule.instance_id("2026-10-01") == "recurring-rent-2026-10-01"
        assert rule.transaction_type == TransactionType.INCOME


class TestOtherEntities:
    """Tests for accounts, debts, budgets and goals."""

    def test_credit_account_flag(self):
        """Test only credit cards use the inverted sign convention."""
        card = Account(name="Visa", type=AccountType.CREDIT_CARD)
        checking = Account(name="Checking", type=AccountType.CHECKING)
        assert card.is_credit
        assert not checking.is_credit

    def test_account_created_key(self):
        """Test created_key is the creation calendar day."""
        account = Account(name="Checking", type=AccountType.CHECKING,
                          created_at=datetime(2026, 10, 15, 23, 59))
        assert account.created_key == "2026-10-15"

    def test_debt_rejects_negative_balance(self):
        """Test debt balances cannot go below zero."""
        with pytest.raises(ValueError):
            Debt(name="Loan", current_balance=Decimal("-1"))

    def test_budget_month_bounds(self):
        """Test budget month must be 1-12."""
        with pytest.raises(ValueError):
            Budget(category_id="cat-exp-food", amount=Decimal("100"), year=2026, month=13)

    def test_goal_overshoot_allowed(self):
        """Test a goal may hold more than its target."""
        goal = SavingsGoal(name="Trip", target_amount=Decimal("100"), current_amount=Decimal("150"))
        assert goal.current_amount > goal.target_amount

    def test_default_categories(self):
        """Test the seeded category set."""
        categories = default_categories()
        assert len(categories) == 16
        assert categories["cat-exp-food"].name == "Food & Dining"


class TestSnapshot:
    """Tests for the persisted snapshot."""

    def test_fresh_snapshot_is_empty(self):
        """Test seeded categories alone do not count as user data."""
        snapshot = LedgerSnapshot.fresh()
        assert snapshot.categories
        assert snapshot.is_empty

    def test_snapshot_with_account_is_not_empty(self):
        """Test any user entity makes the snapshot non-empty."""
        snapshot = LedgerSnapshot.fresh()
        account = Account(name="Checking", type=AccountType.CHECKING)
        snapshot.accounts[account.id] = account
        assert not snapshot.is_empty

    def test_document_round_trip(self):
        """Test the JSON document restores the same snapshot."""
        snapshot = LedgerSnapshot.fresh()
        tx = Transaction(type=TransactionType.SPENDING, amount=Decimal("9.99"), category="cat-exp-food")
        snapshot.days["2026-10-15"] = DayBucket(date="2026-10-15", spending=[tx])

        restored = LedgerSnapshot.from_document(snapshot.to_document())

        assert restored == snapshot

    def test_invalid_document_raises(self):
        """Test a structurally invalid document is rejected."""
        with pytest.raises(ValidationError):
            LedgerSnapshot.from_document({"days": {"2026-10-15": {"spending": [{"type": "spending"}]}}})


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id="tx-1",
            description="Spending of 5 recorded",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.to_log_dict()["event_type"] == "transaction_added"

    def test_description_length_limit(self):
        """Test descriptions are capped."""
        with pytest.raises(ValueError):
            AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="x" * 501)

    def test_builder_not_found_is_warning(self):
        """Test not-found events are warnings."""
        event = AuditEventBuilder.entity_not_found("account", "account-x", "remove_account")
        assert event.severity == AuditSeverity.WARNING
        assert event.details["operation"] == "remove_account"

    def test_builder_cascade_description(self):
        """Test cascaded removals mention the later instances."""
        event = AuditEventBuilder.transaction_removed("2026-10-15", "tx-1", cascaded=2)
        assert "2 later recurring" in event.description

    def test_builder_statement_import_severity(self):
        """Test imports with rejected lines are warnings."""
        assert AuditEventBuilder.statement_imported(1, 0, 0).severity == AuditSeverity.INFO
        assert AuditEventBuilder.statement_imported(1, 0, 2).severity == AuditSeverity.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
