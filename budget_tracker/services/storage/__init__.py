"""
Storage Services Package

Provides the abstract persistence gateway and its implementations.
Google Sheets is the remote backend; memory is for tests and offline
sessions; the local cache is the device-side copy.
"""

from budget_tracker.services.storage.interface import (
    ConnectionError,
    PersistenceGateway,
    SnapshotFormatError,
    StorageError,
)
from budget_tracker.services.storage.memory import InMemoryGateway
from budget_tracker.services.storage.local_cache import LocalSnapshotCache
from budget_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsGateway,
    split_chunks,
)

__all__ = [
    # Interface
    "PersistenceGateway",
    # Exceptions
    "ConnectionError",
    "SnapshotFormatError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsGateway",
    "InMemoryGateway",
    "LocalSnapshotCache",
    "split_chunks",
]
