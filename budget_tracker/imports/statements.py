"""
Statement Import

The only boundary where the ledger accepts untrusted bulk input. Every
candidate line is checked on its own: a bad line is reported in the
result and never aborts the batch.

Duplicate detection, in order:
1. Exact match: same date and type, amount within a cent, same
   description ignoring case
2. Recurring match: the line looks like an active rule of the same kind
   and that rule already has an instance on the date
3. Fuzzy match: a same-type entry within a few days, amount within a
   cent, and a similar description

Matching is against the ledger as it stood before the batch, so two
identical purchases on one statement are both imported.
"""

import re
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein

from budget_tracker.config import LedgerSettings, get_settings
from budget_tracker.dates import InvalidDateKeyError, parse_date_key
from budget_tracker.ledger.errors import LedgerError
from budget_tracker.ledger.recurrence import occurrences_in_month
from budget_tracker.models.ledger import (
    DayBucket,
    RecurringKind,
    RecurringRule,
    Transaction,
    TransactionType,
    new_id,
)
from budget_tracker.models.views import ImportResult, StatementLine

AMOUNT_TOLERANCE = Decimal("0.01")

StatementInput = Union[StatementLine, Mapping[str, Any]]

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


class StatementLineError(ValueError):
    """A statement line failed line-level validation."""
    pass


def normalize_description(description: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _NON_ALPHANUMERIC.sub("", description.lower())
    return _WHITESPACE.sub(" ", text).strip()


def description_similarity(first: str, second: str) -> float:
    """Normalized Levenshtein similarity of two descriptions, 0.0 to 1.0."""
    return Levenshtein.normalized_similarity(
        normalize_description(first),
        normalize_description(second),
    )


class _Candidate:
    """A statement line after validation."""

    def __init__(self, line: StatementLine, date_key: str, tx_type: TransactionType, amount: Decimal):
        self.line = line
        self.date_key = date_key
        self.date = parse_date_key(date_key)
        self.type = tx_type
        self.amount = amount
        self.description = line.description.strip()


class StatementImporter:
    """
    Deduplicates statement lines against the ledger and adds the rest.

    Added lines go through the ``add`` callback, which the engine binds to
    its own ``add_transaction`` so imports share the mutation pipeline.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _parse(self, raw: StatementInput) -> _Candidate:
        try:
            line = raw if isinstance(raw, StatementLine) else StatementLine.model_validate(dict(raw))
        except ValidationError as e:
            messages = "; ".join(entry["msg"] for entry in e.errors())
            raise StatementLineError(messages)
        except (TypeError, ValueError) as e:
            raise StatementLineError(str(e))

        try:
            date_key = parse_date_key(line.date).isoformat()
        except InvalidDateKeyError as e:
            raise StatementLineError(str(e))

        if not line.amount.is_finite() or line.amount == 0:
            raise StatementLineError(f"Amount must be a non-zero number, got {line.amount}")

        if not line.description.strip():
            raise StatementLineError("Description is required")

        tx_type = line.type
        if tx_type is None:
            tx_type = TransactionType.INCOME if line.amount >= 0 else TransactionType.SPENDING

        amount = abs(line.amount).quantize(AMOUNT_TOLERANCE)
        if amount <= 0:
            raise StatementLineError(f"Amount rounds to zero: {line.amount}")
        return _Candidate(line, date_key, tx_type, amount)

    @staticmethod
    def _same_type(bucket: Optional[list[Transaction]], tx_type: TransactionType) -> list[Transaction]:
        return [tx for tx in (bucket or []) if tx.type == tx_type]

    def _is_exact_duplicate(self, candidate: _Candidate, existing: list[Transaction]) -> bool:
        wanted = candidate.description.lower()
        return any(
            abs(tx.amount - candidate.amount) < AMOUNT_TOLERANCE
            and tx.description.strip().lower() == wanted
            for tx in existing
        )

    def _match_rule(
        self,
        candidate: _Candidate,
        rules: Iterable[RecurringRule],
    ) -> Optional[RecurringRule]:
        if candidate.type == TransactionType.TRANSFER:
            return None
        kind = RecurringKind.INCOME if candidate.type == TransactionType.INCOME else RecurringKind.EXPENSE
        window = self._settings.import_date_window_days

        for rule in rules:
            if not rule.is_active or rule.kind != kind:
                continue
            if abs(rule.amount - candidate.amount) > AMOUNT_TOLERANCE:
                continue
            similarity = description_similarity(candidate.description, rule.description)
            if similarity < self._settings.recurring_similarity_threshold:
                continue
            occurrences = occurrences_in_month(
                rule.pattern,
                candidate.date.year,
                candidate.date.month,
                rule.start_date,
                rule.end_date,
            )
            if any(abs((candidate.date - day).days) <= window for day in occurrences):
                return rule
        return None

    def _is_fuzzy_duplicate(
        self,
        candidate: _Candidate,
        baseline: Mapping[str, list[Transaction]],
    ) -> bool:
        window = self._settings.import_date_window_days
        threshold = self._settings.import_similarity_threshold

        for offset in range(-window, window + 1):
            date_key = (candidate.date + timedelta(days=offset)).isoformat()
            for tx in self._same_type(baseline.get(date_key), candidate.type):
                if abs(tx.amount - candidate.amount) > AMOUNT_TOLERANCE:
                    continue
                if description_similarity(candidate.description, tx.description) > threshold:
                    return True
        return False

    def import_lines(
        self,
        lines: Iterable[StatementInput],
        days: Mapping[str, DayBucket],
        rules: Iterable[RecurringRule],
        add: Callable[[str, Transaction], Any],
        account_id: Optional[str] = None,
    ) -> ImportResult:
        """
        Import candidate lines.

        Args:
            lines: Statement lines, as models or raw mappings
            days: Current day buckets
            rules: Recurring rules to match against
            add: Called with (date_key, transaction) for each line to add
            account_id: Account to attach imported entries to, if any

        Returns:
            ImportResult with added/skipped counts, errors and skipped lines
        """
        result = ImportResult()
        rules = list(rules)
        baseline = {
            date_key: list(bucket.iter_transactions())
            for date_key, bucket in days.items()
        }

        for raw in lines:
            label = raw.get("date") if isinstance(raw, Mapping) else getattr(raw, "date", None)
            try:
                candidate = self._parse(raw)
            except StatementLineError as e:
                result.errors.append(f"Error importing transaction on {label}: {e}")
                continue

            existing = self._same_type(baseline.get(candidate.date_key), candidate.type)

            if self._is_exact_duplicate(candidate, existing):
                result.skipped += 1
                result.skipped_transactions.append(candidate.line)
                continue

            rule = self._match_rule(candidate, rules)
            if rule is not None and any(tx.recurring_id == rule.id for tx in existing):
                result.skipped += 1
                result.skipped_transactions.append(candidate.line)
                continue

            if self._is_fuzzy_duplicate(candidate, baseline):
                result.skipped += 1
                result.skipped_transactions.append(candidate.line)
                continue

            try:
                transaction = Transaction(
                    id=new_id("imported"),
                    type=candidate.type,
                    amount=candidate.amount,
                    description=candidate.description,
                    account_id=account_id,
                    category=rule.category if rule else None,
                    is_recurring=rule is not None,
                    recurring_id=rule.id if rule else None,
                )
                add(candidate.date_key, transaction)
            except (ValidationError, LedgerError) as e:
                result.errors.append(f"Error importing transaction on {candidate.date_key}: {e}")
                continue

            result.added += 1

        return result
