"""
In-Memory Persistence

Keeps serialized snapshot documents in a dict. Used by tests and by
sessions with no remote store configured. Documents go through the same
JSON round trip as the real backends, so a load never shares objects
with the engine that saved it.
"""

import copy
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage.interface import PersistenceGateway, SnapshotFormatError


class InMemoryGateway(PersistenceGateway):
    """Process-local snapshot store."""

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None):
        self._documents: dict[str, dict[str, Any]] = documents or {}
        self.updated_at: dict[str, datetime] = {}
        self.save_count = 0

    async def load(self, user_id: str) -> Optional[LedgerSnapshot]:
        document = self._documents.get(user_id)
        if document is None:
            return None
        try:
            return LedgerSnapshot.from_document(copy.deepcopy(document))
        except ValidationError as e:
            raise SnapshotFormatError(f"Stored snapshot for {user_id} is invalid: {e}")

    async def save(self, user_id: str, snapshot: LedgerSnapshot) -> bool:
        self._documents[user_id] = snapshot.to_document()
        self.updated_at[user_id] = datetime.now()
        self.save_count += 1
        return True

    def document(self, user_id: str) -> Optional[dict[str, Any]]:
        """The raw stored document, for inspection."""
        return self._documents.get(user_id)
