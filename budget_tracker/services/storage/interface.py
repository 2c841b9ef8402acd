"""
Abstract Persistence Interface

DESIGN DECISION: The engine persists through an abstract gateway.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and offline sessions
3. Keep the ledger decoupled from any storage implementation

The contract is intentionally small: a whole-snapshot load and save
per user. The user is always passed explicitly; no gateway consults a
global session.
"""

from abc import ABC, abstractmethod
from typing import Optional

from budget_tracker.models.snapshot import LedgerSnapshot


class PersistenceGateway(ABC):
    """
    Durable remote store for ledger snapshots.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load(self, user_id: str) -> Optional[LedgerSnapshot]:
        """
        Load a user's snapshot.

        Args:
            user_id: Owner of the snapshot

        Returns:
            The snapshot, or None if the user has nothing stored

        Raises:
            ConnectionError: If the store is unreachable
            SnapshotFormatError: If stored data cannot be read
        """
        pass

    @abstractmethod
    async def save(self, user_id: str, snapshot: LedgerSnapshot) -> bool:
        """
        Replace a user's stored snapshot (last writer wins).

        Args:
            user_id: Owner of the snapshot
            snapshot: Full state to store

        Returns:
            True if saved successfully

        Raises:
            StorageError: If the write fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class SnapshotFormatError(StorageError):
    """Stored snapshot data is corrupt or unreadable."""
    pass
