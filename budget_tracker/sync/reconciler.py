"""
Startup Reconciliation

Decides which snapshot a session starts from: the remote copy or the
device-local cache.

Rules:
- Remote holds data → remote wins
- Remote is empty, local has data → push local once (bounded by a timeout)
- Remote unreachable → local, logged

Whichever way it goes, the session always starts.
"""

import asyncio
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from budget_tracker.audit import AuditLogger
from budget_tracker.models.audit import AuditEventBuilder, AuditEventType
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage import PersistenceGateway, StorageError

logger = structlog.get_logger(__name__)


class SessionContext(BaseModel):
    """Who the current session belongs to. Passed explicitly, never global."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)


class SnapshotReconciler:
    """Resolves the starting snapshot for a session."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        audit: Optional[AuditLogger] = None,
        migration_timeout: float = 30.0,
    ):
        self._gateway = gateway
        self._audit = audit
        self._migration_timeout = migration_timeout

    def _record(
        self,
        event_type: AuditEventType,
        user_id: str,
        description: str,
        error_message: Optional[str] = None,
    ) -> None:
        if self._audit:
            self._audit.log(AuditEventBuilder.snapshot_event(
                event_type, user_id, description, error_message=error_message,
            ))

    async def reconcile(
        self,
        session: SessionContext,
        local_snapshot: LedgerSnapshot,
    ) -> LedgerSnapshot:
        """
        Pick the authoritative snapshot for this session.

        Args:
            session: The signed-in user
            local_snapshot: The device-local snapshot (may be empty)

        Returns:
            The snapshot the engine should start from
        """
        user_id = session.user_id

        try:
            remote = await self._gateway.load(user_id)
        except StorageError as e:
            logger.warning("remote_load_failed_using_local", user_id=user_id, error=str(e))
            self._record(
                AuditEventType.SNAPSHOT_LOADED,
                user_id,
                "Remote snapshot unavailable; starting from local data",
                error_message=str(e),
            )
            return local_snapshot

        if remote is not None and not remote.is_empty:
            self._record(AuditEventType.SNAPSHOT_LOADED, user_id, "Loaded remote snapshot")
            return remote

        if local_snapshot.is_empty:
            return remote if remote is not None else local_snapshot

        await self._migrate(user_id, local_snapshot)
        return local_snapshot

    async def _migrate(self, user_id: str, snapshot: LedgerSnapshot) -> bool:
        logger.info("migrating_local_snapshot", user_id=user_id)
        try:
            await asyncio.wait_for(
                self._gateway.save(user_id, snapshot),
                timeout=self._migration_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "snapshot_migration_timed_out",
                user_id=user_id,
                timeout_seconds=self._migration_timeout,
            )
            self._record(
                AuditEventType.SAVE_FAILED,
                user_id,
                "Migration of local data timed out; local data stays authoritative",
                error_message=f"timeout after {self._migration_timeout}s",
            )
            return False
        except StorageError as e:
            logger.warning("snapshot_migration_failed", user_id=user_id, error=str(e))
            self._record(
                AuditEventType.SAVE_FAILED,
                user_id,
                "Migration of local data failed; local data stays authoritative",
                error_message=str(e),
            )
            return False

        self._record(AuditEventType.SNAPSHOT_MIGRATED, user_id, "Local data migrated to remote store")
        return True
