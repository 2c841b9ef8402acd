"""
Two-Stage Validation Pipeline

DESIGN DECISION: Input to the ledger is validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Positive amounts at currency precision
- Transfer field invariant (both accounts, and distinct)
- Well-formed YYYY-MM-DD date keys
Any error here rejects the input before it touches the store.

STAGE 2 - SEMANTIC VALIDATION:
- Referenced accounts exist
- Entry is not dated before the account it references was created
  (it would silently not count toward that balance)
- Entry is not dated absurdly far in the future
These are warnings only; the ledger still accepts the entry.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and the engine logs them.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from budget_tracker.config import LedgerSettings, get_settings
from budget_tracker.dates import DateLike, InvalidDateKeyError, parse_date_key
from budget_tracker.ledger.errors import LedgerValidationError, issues_from_pydantic
from budget_tracker.models.ledger import Account, Transaction
from budget_tracker.models.views import ValidationIssue, ValidationResult

TransactionInput = Union[Transaction, Mapping[str, Any]]


def require_date_key(value: DateLike, field: str = "date") -> str:
    """
    Normalize a date to its key or reject it.

    Raises:
        LedgerValidationError: If the value is not a real YYYY-MM-DD date
    """
    try:
        return parse_date_key(value).isoformat()
    except InvalidDateKeyError as e:
        raise LedgerValidationError(str(e), [ValidationIssue(
            field=field,
            issue_type="malformed_date",
            message=str(e),
            severity="error",
        )])


def require_positive_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Read a strictly positive money amount or reject it.

    Raises:
        LedgerValidationError: If the value is not a finite number > 0
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        amount = None

    if amount is None or not amount.is_finite() or amount <= 0:
        message = f"Amount must be a positive number, got {value!r}"
        raise LedgerValidationError(message, [ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=message,
            severity="error",
        )])
    return amount.quantize(Decimal("0.01"))


class TransactionValidator:
    """
    Validates ledger entries through a two-stage pipeline.

    Stage 1: Schema validation (no ledger access needed)
    Stage 2: Semantic validation (checks references against the accounts)
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            clock: Source of "now"; defaults to datetime.now
            settings: Ledger settings; loaded from the environment if None
        """
        self._clock = clock or datetime.now
        self._settings = settings or get_settings().ledger

    def _validate_schema(
        self,
        date_value: DateLike,
        data: TransactionInput,
    ) -> tuple[Optional[str], Optional[Transaction], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (date_key or None, transaction or None, list_of_issues)
        """
        issues = []

        date_key = None
        try:
            date_key = parse_date_key(date_value).isoformat()
        except InvalidDateKeyError as e:
            issues.append(ValidationIssue(
                field="date",
                issue_type="malformed_date",
                message=str(e),
                severity="error",
            ))

        transaction = None
        if isinstance(data, Transaction):
            transaction = data
        else:
            try:
                transaction = Transaction.model_validate(dict(data))
            except ValidationError as e:
                issues.extend(issues_from_pydantic(e))
            except (TypeError, ValueError) as e:
                issues.append(ValidationIssue(
                    field="transaction",
                    issue_type="invalid_value",
                    message=str(e),
                    severity="error",
                ))

        return date_key, transaction, issues

    def _validate_semantic(
        self,
        date_key: str,
        transaction: Transaction,
        accounts: Mapping[str, Account],
    ) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Unknown account references
        - Entries dated before the referenced account existed
        - Far-future dates

        Returns: list_of_issues (warnings only)
        """
        issues = []

        for field in ("account_id", "transfer_to_account_id"):
            account_id = getattr(transaction, field)
            if not account_id:
                continue
            account = accounts.get(account_id)
            if account is None:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="unknown_account",
                    message=f"Account {account_id} does not exist",
                    severity="warning",
                ))
            elif date_key < account.created_key:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="before_account_creation",
                    message=(
                        f"Entry dated {date_key} is before {account.name} was created "
                        f"({account.created_key}) and will not affect its balance"
                    ),
                    severity="warning",
                ))

        today = self._clock().date()
        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        if date_key > max_future.isoformat():
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Entry date ({date_key}) is far in the future",
                severity="warning",
            ))

        return issues

    def validate(
        self,
        date_value: DateLike,
        data: TransactionInput,
        accounts: Optional[Mapping[str, Account]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            date_value: Day the entry is recorded on
            data: Transaction model or raw field mapping
            accounts: Known accounts; semantic checks are skipped if None

        Returns:
            ValidationResult with all issues found
        """
        return self._run(date_value, data, accounts)[0]

    def ensure_valid(
        self,
        date_value: DateLike,
        data: TransactionInput,
        accounts: Optional[Mapping[str, Account]] = None,
    ) -> tuple[str, Transaction, ValidationResult]:
        """
        Validate and return the normalized date key and transaction.

        Raises:
            LedgerValidationError: If stage 1 found any error
        """
        result, date_key, transaction = self._run(date_value, data, accounts)
        if not result.schema_valid:
            errors = [issue for issue in result.issues if issue.severity == "error"]
            summary = "; ".join(f"{issue.field}: {issue.message}" for issue in errors)
            raise LedgerValidationError(f"Invalid transaction: {summary}", errors)
        return date_key, transaction, result

    def _run(
        self,
        date_value: DateLike,
        data: TransactionInput,
        accounts: Optional[Mapping[str, Account]],
    ) -> tuple[ValidationResult, Optional[str], Optional[Transaction]]:
        all_issues = []

        date_key, transaction, schema_issues = self._validate_schema(date_value, data)
        all_issues.extend(schema_issues)
        schema_valid = not any(issue.severity == "error" for issue in schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_issues = []
            if accounts is not None:
                semantic_issues = self._validate_semantic(date_key, transaction, accounts)
            all_issues.extend(semantic_issues)
            semantic_valid = not any(issue.severity == "error" for issue in semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        result = ValidationResult(
            validated_at=self._clock(),
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )
        return result, date_key, transaction

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.schema_valid:
            lines.append("This entry could not be recorded:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
