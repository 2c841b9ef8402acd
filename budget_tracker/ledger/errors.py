"""
Ledger engine exceptions.

Only invalid input raises. Unknown ids are reported as a no-op return
value plus an audit warning, debt drift is repaired silently, and
persistence failures are handled by the storage and sync layers.
"""

from typing import Optional

from pydantic import ValidationError

from budget_tracker.models.views import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger engine errors."""
    pass


class LedgerValidationError(LedgerError, ValueError):
    """
    Input rejected before it reached the store.

    Covers non-positive amounts, missing transfer fields and malformed
    date keys.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []

    @classmethod
    def from_pydantic(cls, error: ValidationError, context: str) -> 'LedgerValidationError':
        """Wrap a pydantic ValidationError raised while building a model."""
        issues = issues_from_pydantic(error)
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        return cls(f"Invalid {context}: {summary}", issues)


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic error entries into validation issues."""
    issues = []
    for entry in error.errors():
        location = ".".join(str(part) for part in entry.get("loc", ())) or "model"
        issues.append(ValidationIssue(
            field=location,
            issue_type=entry.get("type", "invalid_value"),
            message=entry.get("msg", "Invalid value"),
            severity="error",
        ))
    return issues
