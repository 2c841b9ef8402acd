"""Snapshot persistence scheduling and startup reconciliation."""

from budget_tracker.sync.reconciler import SessionContext, SnapshotReconciler
from budget_tracker.sync.writer import DebouncedWriter

__all__ = [
    "DebouncedWriter",
    "SessionContext",
    "SnapshotReconciler",
]
