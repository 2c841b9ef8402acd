"""
Debounced Snapshot Writer

Every completed mutation calls schedule(); a burst of mutations becomes a
single whole-snapshot save once the ledger has been quiet for the
debounce delay.

DESIGN DECISION: Persistence failures never reach the user.
A failed save is logged and audited, the writer stays dirty, and the
next mutation (or an explicit flush) writes again. There is no automatic
retry loop.
"""

import asyncio
from typing import Callable, Optional

import structlog

from budget_tracker.audit import AuditLogger
from budget_tracker.models.audit import AuditEventBuilder, AuditEventType
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage import (
    LocalSnapshotCache,
    PersistenceGateway,
    StorageError,
)
from budget_tracker.sync.reconciler import SessionContext

logger = structlog.get_logger(__name__)

SnapshotProvider = Callable[[], LedgerSnapshot]


class DebouncedWriter:
    """
    Coalesces ledger changes into debounced saves.

    Usage:
        writer = DebouncedWriter(gateway, session, lambda: engine.snapshot)
        engine.add_change_listener(writer.schedule)
        ...
        await writer.flush()
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        session: SessionContext,
        snapshot_provider: SnapshotProvider,
        delay_seconds: float = 0.5,
        audit: Optional[AuditLogger] = None,
        local_cache: Optional[LocalSnapshotCache] = None,
    ):
        self._gateway = gateway
        self._session = session
        self._snapshot_provider = snapshot_provider
        self._delay = delay_seconds
        self._audit = audit
        self._local_cache = local_cache

        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Task] = None
        self._save_lock = asyncio.Lock()
        self._dirty = False

    @property
    def dirty(self) -> bool:
        """True when changes exist that no save has written yet."""
        return self._dirty

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        """
        Mark the ledger changed and restart the debounce timer.

        Safe to call outside an event loop: the writer is only marked
        dirty and the next flush() writes.
        """
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("save_deferred_no_loop", user_id=self._session.user_id)
            return

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._pending = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        try:
            await self.flush()
        except Exception as e:
            # Nothing awaits a timer-driven save; log instead of losing it
            logger.exception("debounced_save_crashed", user_id=self._session.user_id)
            if self._audit:
                self._audit.log_error(type(e).__name__, str(e), {"user_id": self._session.user_id})

    async def flush(self, force: bool = False) -> bool:
        """
        Write the current snapshot now.

        Saves are serialized: a flush waits for any save already in flight,
        then writes the snapshot as it stands once the lock is held.

        Args:
            force: Write even when nothing changed since the last save

        Returns:
            True if the snapshot was written (or nothing needed writing)
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        async with self._save_lock:
            if not (self._dirty or force):
                return True

            self._dirty = False
            # Copy before any await so later mutations don't leak into this save
            snapshot = self._snapshot_provider().model_copy(deep=True)
            user_id = self._session.user_id

            if self._local_cache is not None:
                try:
                    self._local_cache.save(snapshot)
                except StorageError as e:
                    logger.warning("local_cache_save_failed", user_id=user_id, error=str(e))

            try:
                await self._gateway.save(user_id, snapshot)
            except StorageError as e:
                self._dirty = True
                logger.error("snapshot_save_failed", user_id=user_id, error=str(e))
                if self._audit:
                    self._audit.log(AuditEventBuilder.snapshot_event(
                        AuditEventType.SAVE_FAILED,
                        user_id,
                        "Snapshot save failed; changes kept locally",
                        error_message=str(e),
                    ))
                return False

        logger.debug("snapshot_saved", user_id=user_id)
        return True

    async def close(self) -> None:
        """
        Cancel any pending timer and wait for a save already in flight.

        Unsaved changes stay marked dirty.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is not None and not self._pending.done():
            await self._pending
        self._pending = None
