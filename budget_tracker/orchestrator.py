"""
Main Orchestrator for Budget Tracker

This module ties together all the components and defines the
session lifecycle:
1. Start (local cache → reconcile with remote → engine → repair → populate)
2. Mutate (every engine change schedules a debounced save)
3. Close (flush whatever is still unsaved)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The engine never talks to storage directly
- Storage failures never block the session from starting
- Startup repair always runs before the user sees any derived view
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from budget_tracker.audit import AuditLogger
from budget_tracker.config import Settings, get_settings, validate_all_settings
from budget_tracker.ledger.engine import LedgerEngine
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage import (
    GoogleSheetsGateway,
    InMemoryGateway,
    LocalSnapshotCache,
    PersistenceGateway,
    SnapshotFormatError,
    StorageError,
)
from budget_tracker.sync import DebouncedWriter, SessionContext, SnapshotReconciler

logger = structlog.get_logger(__name__)


class TrackerSession:
    """
    One user's working session over their ledger.

    Flow:
    1. Read the local cache (a corrupt cache is replaced by a fresh ledger)
    2. Reconcile with the remote store
    3. Build the engine on the winning snapshot
    4. Startup repair: stale recurring instances, then debt drift
    5. Materialize recurring entries for the current month
    6. Attach the debounced writer to the engine's change signal
    """

    def __init__(
        self,
        session: SessionContext,
        gateway: PersistenceGateway,
        local_cache: Optional[LocalSnapshotCache] = None,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._session = session
        self._gateway = gateway
        self._local_cache = local_cache
        self._settings = settings or get_settings()
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock

        self._engine: Optional[LedgerEngine] = None
        self._writer: Optional[DebouncedWriter] = None

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    @property
    def engine(self) -> LedgerEngine:
        """The running engine. Only available between start() and close()."""
        if self._engine is None:
            raise RuntimeError("Session has not been started")
        return self._engine

    @property
    def writer(self) -> Optional[DebouncedWriter]:
        return self._writer

    def _load_local(self, seed_categories: bool) -> LedgerSnapshot:
        if self._local_cache is not None:
            try:
                cached = self._local_cache.load()
            except SnapshotFormatError as e:
                logger.warning("local_cache_unreadable", error=str(e))
                cached = None
            if cached is not None:
                return cached
        return LedgerSnapshot.fresh(seed_categories)

    async def start(self) -> LedgerEngine:
        """
        Start the session.

        Returns:
            The engine, ready for use
        """
        ledger_settings = self._settings.ledger
        persistence_settings = self._settings.persistence

        local = self._load_local(ledger_settings.seed_default_categories)
        reconciler = SnapshotReconciler(
            self._gateway,
            audit=self._audit_logger,
            migration_timeout=persistence_settings.migration_timeout_seconds,
        )
        snapshot = await reconciler.reconcile(self._session, local)

        engine = LedgerEngine(
            snapshot,
            clock=self._clock,
            settings=ledger_settings,
            audit=self._audit_logger,
        )
        repair = engine.run_startup_repair()
        today = engine.today()
        created = engine.populate_recurring_for_month(today.year, today.month)

        self._writer = DebouncedWriter(
            self._gateway,
            self._session,
            lambda: engine.snapshot,
            delay_seconds=persistence_settings.debounce_seconds,
            audit=self._audit_logger,
            local_cache=self._local_cache,
        )
        engine.add_change_listener(self._writer.schedule)
        if created or any(repair.values()):
            # Startup changes happened before the writer was listening
            self._writer.schedule()

        self._engine = engine
        logger.info(
            "session_started",
            user_id=self._session.user_id,
            recurring_created=created,
            **repair,
        )
        return engine

    async def close(self) -> bool:
        """
        Flush unsaved changes and stop the writer.

        Returns:
            True if everything was written
        """
        if self._writer is None:
            return True
        saved = await self._writer.flush()
        await self._writer.close()
        if self._engine is not None:
            self._engine.remove_change_listener(self._writer.schedule)
        logger.info("session_closed", user_id=self._session.user_id, saved=saved)
        return saved


def create_app_components(
    user_id: str,
    use_storage: bool = True,
) -> TrackerSession:
    """
    Factory function to create a session with its storage wired in.

    Args:
        user_id: The signed-in user
        use_storage: Whether to use the configured remote backend.
                    Set to False for testing without storage.

    Returns:
        An unstarted TrackerSession
    """
    settings = get_settings()
    persistence_settings = settings.persistence
    audit_logger = AuditLogger()

    gateway: PersistenceGateway = InMemoryGateway()
    local_cache: Optional[LocalSnapshotCache] = None

    if use_storage:
        local_cache = LocalSnapshotCache(persistence_settings.local_cache_path)
        if persistence_settings.backend == "google_sheets":
            status = validate_all_settings()
            if not status.get("google_sheets"):
                # Storage not configured - continue with local data only
                error = status.get("google_sheets_error", "Google Sheets settings missing")
                logger.warning("remote_storage_unconfigured", error=error)
                audit_logger.log_error("SettingsError", error, {"backend": "google_sheets"})
            else:
                try:
                    gateway = GoogleSheetsGateway()
                except (StorageError, ValueError) as e:
                    logger.warning("remote_storage_unavailable", error=str(e))
                    audit_logger.log_error(type(e).__name__, str(e), {"backend": "google_sheets"})

    return TrackerSession(
        SessionContext(user_id=user_id),
        gateway,
        local_cache=local_cache,
        settings=settings,
        audit_logger=audit_logger,
    )
