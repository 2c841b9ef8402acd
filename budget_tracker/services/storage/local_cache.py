"""
Local Snapshot Cache

The device-local copy of the last known snapshot, stored as one JSON
file. It lets a session start offline and is the source migrated to the
remote store when the remote holds nothing yet.
"""

import json
import os
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage.interface import SnapshotFormatError, StorageError

logger = structlog.get_logger(__name__)


class LocalSnapshotCache:
    """JSON-file snapshot cache."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[LedgerSnapshot]:
        """
        Read the cached snapshot.

        Returns None when no cache file exists yet.

        Raises:
            SnapshotFormatError: If the file is not a readable snapshot
        """
        if not self._path.exists():
            return None
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as e:
            # ValueError covers both JSONDecodeError and UnicodeDecodeError
            raise SnapshotFormatError(f"Local cache {self._path} is unreadable: {e}")
        if not isinstance(document, dict):
            raise SnapshotFormatError(f"Local cache {self._path} does not hold a snapshot")
        try:
            return LedgerSnapshot.from_document(document)
        except ValidationError as e:
            raise SnapshotFormatError(f"Local cache {self._path} is unreadable: {e}")

    def save(self, snapshot: LedgerSnapshot) -> None:
        """
        Write the snapshot, replacing the previous cache atomically.

        Raises:
            StorageError: If the file cannot be written
        """
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(snapshot.to_document()), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write local cache {self._path}: {e}")
        logger.debug("local_cache_saved", path=str(self._path))
