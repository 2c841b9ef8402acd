"""
Ledger Snapshot

The full persisted state of one user's ledger: day buckets keyed by date
string and every other entity keyed by id. This is what the persistence
gateway loads and saves.
"""

import re
from copy import deepcopy
from typing import Any

from pydantic import BaseModel, Field

from budget_tracker.models.ledger import (
    Account,
    Budget,
    Category,
    DayBucket,
    Debt,
    DebtPayment,
    RecurringRule,
    SavingsGoal,
    default_categories,
)

SNAPSHOT_SCHEMA_VERSION = 2

_COLLECTIONS = (
    "days",
    "accounts",
    "categories",
    "budgets",
    "savings_goals",
    "debts",
    "debt_payments",
    "recurring_rules",
)
_LEGACY_RULE_COLLECTIONS = ("recurring_expenses", "recurring_income")


class LedgerSnapshot(BaseModel):
    """Every entity the engine owns, as nested maps."""

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    days: dict[str, DayBucket] = Field(default_factory=dict)
    accounts: dict[str, Account] = Field(default_factory=dict)
    categories: dict[str, Category] = Field(default_factory=dict)
    budgets: dict[str, Budget] = Field(default_factory=dict)
    savings_goals: dict[str, SavingsGoal] = Field(default_factory=dict)
    debts: dict[str, Debt] = Field(default_factory=dict)
    debt_payments: dict[str, DebtPayment] = Field(default_factory=dict)
    recurring_rules: dict[str, RecurringRule] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """
        True when the user has recorded nothing.

        Seeded default categories alone do not count as data.
        """
        has_days = any(not bucket.is_empty for bucket in self.days.values())
        return not (
            has_days
            or self.accounts
            or self.budgets
            or self.savings_goals
            or self.debts
            or self.debt_payments
            or self.recurring_rules
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-safe nested dict for storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> 'LedgerSnapshot':
        """Build a snapshot from stored data, upgrading older layouts first."""
        return cls.model_validate(migrate_legacy_snapshot(document))

    @classmethod
    def fresh(cls, seed_categories: bool = True) -> 'LedgerSnapshot':
        """An empty ledger, optionally with the default categories."""
        snapshot = cls()
        if seed_categories:
            snapshot.categories = default_categories()
        return snapshot


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def _snake_fields(entity: Any) -> Any:
    """Field names (not map keys or ids) to snake_case, nested pattern included."""
    if not isinstance(entity, dict):
        return entity
    converted = {_snake(key): value for key, value in entity.items()}
    pattern = converted.get("pattern")
    if isinstance(pattern, dict):
        pattern = {_snake(key): value for key, value in pattern.items()}
        if isinstance(pattern.get("day_type"), str):
            pattern["day_type"] = _snake(pattern["day_type"])
        converted["pattern"] = pattern
    return converted


def _keyed_by_id(collection: Any) -> dict[str, Any]:
    if isinstance(collection, list):
        return {item["id"]: item for item in collection if isinstance(item, dict)}
    return dict(collection or {})


def _normalize_field_names(data: dict[str, Any]) -> dict[str, Any]:
    """
    Accept the browser-store layout: camelCase names, entity lists.

    Top-level collection names and every entity's field names become
    snake_case; lists of entities become maps keyed by id.
    """
    data = {_snake(key): value for key, value in data.items()}

    for name in _COLLECTIONS[1:] + _LEGACY_RULE_COLLECTIONS:
        if name in data and data[name] is not None:
            data[name] = {
                entity_id: _snake_fields(entity)
                for entity_id, entity in _keyed_by_id(data[name]).items()
            }

    for bucket in (data.get("days") or {}).values():
        if not isinstance(bucket, dict):
            continue
        for list_name in ("income", "spending", "transfers"):
            if isinstance(bucket.get(list_name), list):
                bucket[list_name] = [_snake_fields(tx) for tx in bucket[list_name]]

    return data


def _pattern_from_legacy_rule(rule: dict[str, Any]) -> dict[str, Any]:
    # Before patterns existed: expenses had a bare dayOfMonth, income a bare dayOfWeek
    if "day_of_month" in rule:
        return {
            "type": "monthly",
            "day_type": "day_of_month",
            "day_value": rule["day_of_month"],
        }
    return {
        "type": "weekly",
        "day_type": "day_of_week",
        "day_value": rule.get("day_of_week", 0),
    }


def migrate_legacy_snapshot(document: dict[str, Any]) -> dict[str, Any]:
    """
    Upgrade a stored document to the current snapshot layout.

    Handles:
    - The browser-store layout (camelCase field names, entity lists
      instead of maps keyed by id)
    - Missing collections (initialized empty; categories get defaults)
    - Day buckets without a transfers list (transfer entries that were
      filed under spending are moved into it)
    - Recurring rules stored before patterns existed
    - Recurring expenses/income stored as two separate collections

    The input is not modified.
    """
    data = _normalize_field_names(deepcopy(document)) if document else {}

    for name in _COLLECTIONS:
        if data.get(name) is None:
            data[name] = {}

    if not data["categories"]:
        data["categories"] = {
            category_id: category.model_dump(mode="json")
            for category_id, category in default_categories().items()
        }

    for date_key, bucket in list(data["days"].items()):
        if bucket is None:
            del data["days"][date_key]
            continue
        bucket.setdefault("date", date_key)
        bucket.setdefault("income", [])
        if bucket.get("spending") is None:
            bucket["spending"] = []
        if "transfers" not in bucket or bucket["transfers"] is None:
            spending, transfers = [], []
            for tx in bucket["spending"]:
                (transfers if tx.get("type") == "transfer" else spending).append(tx)
            bucket["spending"] = spending
            bucket["transfers"] = transfers

    legacy_sources = (
        ("recurring_expenses", "expense"),
        ("recurring_income", "income"),
    )
    for legacy_key, kind in legacy_sources:
        legacy_rules = data.pop(legacy_key, None) or {}
        if isinstance(legacy_rules, list):
            legacy_rules = {rule["id"]: rule for rule in legacy_rules}
        for rule_id, rule in legacy_rules.items():
            rule = dict(rule)
            rule.setdefault("kind", kind)
            data["recurring_rules"].setdefault(rule_id, rule)

    for rule in data["recurring_rules"].values():
        if "pattern" not in rule:
            rule["pattern"] = _pattern_from_legacy_rule(rule)
            rule.pop("day_of_month", None)
            rule.pop("day_of_week", None)

    data["schema_version"] = SNAPSHOT_SCHEMA_VERSION
    return data
