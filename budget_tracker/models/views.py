"""
Derived View Models

Read-only results the engine computes from the ledger, plus the
validation and import reports returned at the engine boundary.
None of these are stored; each call produces a fresh instance.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from budget_tracker.models.ledger import TransactionType


class PeriodTotals(BaseModel):
    """Cash-flow totals for a day, week or month."""

    income: Decimal = Decimal("0")
    spending: Decimal = Field(
        default=Decimal("0"),
        description="Spending plus transfers (transfers count as cash out)"
    )
    profit: Decimal = Decimal("0")


class BudgetHealth(str, Enum):
    """Spend-vs-limit classification."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OVER = "over"


class BudgetStatus(BaseModel):
    """Spend-vs-limit view of one budget for one period window."""

    budget_id: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: Decimal = Field(
        ...,
        description="spent / limit * 100, unrounded; 0 when the limit is 0"
    )
    health: BudgetHealth


class GoalProgress(BaseModel):
    """Contribution-vs-target view of a savings goal."""

    goal_id: str
    current: Decimal
    target: Decimal
    percentage: Decimal = Field(
        ...,
        description="Unclamped; overshoot shows above 100"
    )
    display_percentage: Decimal = Field(
        ...,
        ge=0,
        le=100,
        description="Clamped to 0-100 for progress bars"
    )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'before_account_creation')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (amounts, required fields, date keys)
    Stage 2: Semantic validation (references and dates checked against the ledger)
    """

    validated_at: datetime = Field(default_factory=datetime.now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)


# =============================================================================
# STATEMENT IMPORT MODELS
# =============================================================================

class StatementLine(BaseModel):
    """
    A candidate transaction supplied by statement import.

    Untrusted: fields are kept loose here and checked line by line by the
    importer so one bad line never aborts the batch.
    """

    date: str
    amount: Decimal
    description: str = ""
    type: Optional[TransactionType] = None


class ImportResult(BaseModel):
    """Outcome of a statement import batch."""

    added: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    skipped_transactions: list[StatementLine] = Field(default_factory=list)
