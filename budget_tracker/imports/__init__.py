"""Statement import package."""

from budget_tracker.imports.statements import (
    StatementImporter,
    StatementLineError,
    description_similarity,
    normalize_description,
)

__all__ = [
    "StatementImporter",
    "StatementLineError",
    "description_similarity",
    "normalize_description",
]
