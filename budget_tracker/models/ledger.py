"""
Core Ledger Models for Budget Tracker

These models define the strict schemas for every entity the engine stores.
They are designed to:
1. Enforce the ledger invariants at construction time
2. Provide clear validation error messages
3. Be serializable for snapshot persistence
4. Keep money in Decimal, never float

DESIGN DECISION: Transactions only *reference* accounts by id.
Accounts, rules and debts are owned independently; the ledger is the
single source of truth and every balance is derived from it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from budget_tracker.dates import InvalidDateKeyError, to_date_key


def new_id(prefix: str) -> str:
    """Generate an entity id such as ``account-3f2a...``."""
    return f"{prefix}-{uuid4().hex}"


def _validate_date_key(value: str) -> str:
    try:
        return to_date_key(value)
    except InvalidDateKeyError as e:
        raise ValueError(str(e))


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Kind of money movement a ledger event records."""
    INCOME = "income"
    SPENDING = "spending"
    TRANSFER = "transfer"


class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    IRA = "ira"
    RETIREMENT_401K = "401k"
    INVESTMENT = "investment"
    OTHER = "other"


# Accounts whose balance is money owed; the sign convention is inverted.
CREDIT_ACCOUNT_TYPES = frozenset({AccountType.CREDIT_CARD})


class RecurrenceType(str, Enum):
    """How often a recurring rule repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


class RecurrenceDayType(str, Enum):
    """What a pattern's ``day_value`` anchors to."""
    DAY_OF_MONTH = "day_of_month"      # 1-31, or -1 for the last day
    DAY_OF_WEEK = "day_of_week"        # 0-6, Sunday = 0
    LAST_DAY_OF_MONTH = "last_day_of_month"


class RecurringKind(str, Enum):
    """Whether a rule generates spending or income."""
    EXPENSE = "expense"
    INCOME = "income"


class DebtType(str, Enum):
    """Supported debt types."""
    CREDIT_CARD = "credit_card"
    LOAN = "loan"
    MORTGAGE = "mortgage"
    OTHER = "other"


class CategoryType(str, Enum):
    """Whether a category classifies income or expenses."""
    INCOME = "income"
    EXPENSE = "expense"


class BudgetPeriod(str, Enum):
    """Window a budget limit applies to."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# LEDGER EVENTS
# =============================================================================

class Transaction(BaseModel):
    """
    One ledger event.

    A transfer always carries both ``account_id`` (source) and
    ``transfer_to_account_id`` (destination); a non-transfer never
    carries ``transfer_to_account_id``.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: new_id("tx"),
        min_length=1,
        description="Unique within its day bucket"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount at currency precision"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Account affected (source account for transfers)"
    )
    category: Optional[str] = Field(
        default=None,
        description="Category id"
    )
    transfer_to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account, transfers only"
    )

    # Link back to the recurring rule that generated this entry
    is_recurring: bool = False
    recurring_id: Optional[str] = None

    @model_validator(mode='after')
    def validate_transfer_fields(self) -> 'Transaction':
        """Enforce the transfer field invariant."""
        if self.type == TransactionType.TRANSFER:
            if not self.account_id or not self.transfer_to_account_id:
                raise ValueError(
                    "A transfer requires both account_id and transfer_to_account_id"
                )
            if self.account_id == self.transfer_to_account_id:
                raise ValueError("A transfer cannot target its own source account")
        elif self.transfer_to_account_id:
            raise ValueError("Only transfers may carry transfer_to_account_id")
        return self

    @property
    def is_generated(self) -> bool:
        """Was this entry materialized from a recurring rule?"""
        return self.is_recurring and bool(self.recurring_id)

    @property
    def account_ids(self) -> set[str]:
        """Every account this entry touches."""
        ids = set()
        if self.account_id:
            ids.add(self.account_id)
        if self.transfer_to_account_id:
            ids.add(self.transfer_to_account_id)
        return ids


class DayBucket(BaseModel):
    """
    Every ledger event recorded against one calendar date.

    An absent bucket is equivalent to an empty one.
    """

    date: str = Field(
        ...,
        description="YYYY-MM-DD, no timezone"
    )
    income: list[Transaction] = Field(default_factory=list)
    spending: list[Transaction] = Field(default_factory=list)
    transfers: list[Transaction] = Field(default_factory=list)

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _validate_date_key(v)

    @model_validator(mode='after')
    def validate_unique_ids(self) -> 'DayBucket':
        """Transaction ids are unique within a bucket."""
        ids = [tx.id for tx in self.iter_transactions()]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate transaction id in bucket {self.date}")
        return self

    def entries_for(self, tx_type: TransactionType) -> list[Transaction]:
        """The list a transaction of this type belongs in."""
        if tx_type == TransactionType.INCOME:
            return self.income
        if tx_type == TransactionType.TRANSFER:
            return self.transfers
        return self.spending

    def iter_transactions(self) -> Iterator[Transaction]:
        yield from self.income
        yield from self.spending
        yield from self.transfers

    def find(self, transaction_id: str) -> Optional[Transaction]:
        for tx in self.iter_transactions():
            if tx.id == transaction_id:
                return tx
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.income or self.spending or self.transfers)


# =============================================================================
# ACCOUNTS AND RULES
# =============================================================================

class Account(BaseModel):
    """
    A money account.

    ``initial_balance`` is the signed balance as of ``created_at``; the
    current balance is always derived from the ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("account"))
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    initial_balance: Decimal = Field(
        default=Decimal("0"),
        decimal_places=2,
    )
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_credit(self) -> bool:
        return self.type in CREDIT_ACCOUNT_TYPES

    @property
    def created_key(self) -> str:
        """Date key of the account's creation day."""
        return self.created_at.date().isoformat()


class RecurrencePattern(BaseModel):
    """Frequency plus anchor of a recurring rule."""

    type: RecurrenceType
    day_type: Optional[RecurrenceDayType] = None
    day_value: Optional[int] = Field(
        default=None,
        ge=-1,
        le=31,
        description="Day of month (1-31, -1 = last), weekday (0-6) or month for annual rules"
    )
    interval: Optional[int] = Field(
        default=None,
        ge=1,
        le=366,
        description="Every N days/weeks"
    )

    @model_validator(mode='after')
    def validate_anchor(self) -> 'RecurrencePattern':
        if self.day_type == RecurrenceDayType.DAY_OF_WEEK:
            if self.day_value is None or not 0 <= self.day_value <= 6:
                raise ValueError("day_of_week patterns need a day_value from 0 (Sunday) to 6")
        if self.day_type == RecurrenceDayType.DAY_OF_MONTH:
            if self.day_value is None or self.day_value == 0:
                raise ValueError("day_of_month patterns need a day_value from 1 to 31, or -1")
        return self


class RecurringRule(BaseModel):
    """
    Template for a repeating expense or income.

    Distinct from the concrete transactions it materializes; those carry
    ``recurring_id`` pointing back here.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("recurring"))
    kind: RecurringKind
    pattern: RecurrencePattern
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = None
    account_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def validate_bounds(self) -> 'RecurringRule':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Recurring rule end_date cannot be before start_date")
        return self

    @property
    def transaction_type(self) -> TransactionType:
        if self.kind == RecurringKind.INCOME:
            return TransactionType.INCOME
        return TransactionType.SPENDING

    def instance_id(self, date_key: str) -> str:
        """Deterministic id of this rule's instance on a date."""
        return f"{self.id}-{date_key}"


# =============================================================================
# DEBTS
# =============================================================================

class Debt(BaseModel):
    """
    Money owed.

    When linked to a credit-type account, ``current_balance`` is kept equal
    to the absolute derived balance of that account by the synchronizer.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("debt"))
    name: str = Field(..., min_length=1, max_length=200)
    type: DebtType = DebtType.OTHER
    principal_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    current_balance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    interest_rate: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
        description="Annual interest rate, percent"
    )
    minimum_payment: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    due_date: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month payment is due"
    )
    account_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class DebtPayment(BaseModel):
    """A payment against a debt, optionally backed by a ledger event."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("debt-payment"))
    debt_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: str
    description: Optional[str] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Account the payment was made from"
    )
    transaction_id: Optional[str] = Field(
        default=None,
        description="Ledger event produced by this payment"
    )

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _validate_date_key(v)


# =============================================================================
# CATEGORIES, BUDGETS AND GOALS
# =============================================================================

class Category(BaseModel):
    """Income or expense category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("category"))
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Budget(BaseModel):
    """Spending limit for one category over a period."""

    id: str = Field(default_factory=lambda: new_id("budget"))
    category_id: str
    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Limit")
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    year: int = Field(..., ge=1900, le=9999)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    week: Optional[int] = Field(default=None, ge=1, le=53)
    created_at: datetime = Field(default_factory=datetime.now)


class SavingsGoal(BaseModel):
    """
    Savings target with a running contribution total.

    Overshoot is representable: ``current_amount`` may exceed the target.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("goal"))
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., ge=0, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    target_date: Optional[date] = None
    account_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


# Seeded on a fresh ledger: (id, name, type, icon)
DEFAULT_CATEGORY_SPECS = [
    ("cat-exp-housing", "Housing", CategoryType.EXPENSE, "🏠"),
    ("cat-exp-utilities", "Utilities", CategoryType.EXPENSE, "⚡"),
    ("cat-exp-food", "Food & Dining", CategoryType.EXPENSE, "🍽️"),
    ("cat-exp-transport", "Transportation", CategoryType.EXPENSE, "🚗"),
    ("cat-exp-insurance", "Insurance", CategoryType.EXPENSE, "🛡️"),
    ("cat-exp-healthcare", "Healthcare", CategoryType.EXPENSE, "🏥"),
    ("cat-exp-entertainment", "Entertainment", CategoryType.EXPENSE, "🎬"),
    ("cat-exp-shopping", "Shopping", CategoryType.EXPENSE, "🛍️"),
    ("cat-exp-bills", "Bills", CategoryType.EXPENSE, "📄"),
    ("cat-exp-other", "Other", CategoryType.EXPENSE, "📌"),
    ("cat-inc-salary", "Salary", CategoryType.INCOME, "💼"),
    ("cat-inc-freelance", "Freelance", CategoryType.INCOME, "💻"),
    ("cat-inc-investment", "Investment", CategoryType.INCOME, "📈"),
    ("cat-inc-rental", "Rental", CategoryType.INCOME, "🏘️"),
    ("cat-inc-bonus", "Bonus", CategoryType.INCOME, "🎁"),
    ("cat-inc-other", "Other", CategoryType.INCOME, "📌"),
]


def default_categories(created_at: Optional[datetime] = None) -> dict[str, Category]:
    """The default category set, keyed by id."""
    created_at = created_at or datetime.now()
    return {
        category_id: Category(
            id=category_id,
            name=name,
            type=category_type,
            icon=icon,
            created_at=created_at,
        )
        for category_id, name, category_type, icon in DEFAULT_CATEGORY_SPECS
    }
