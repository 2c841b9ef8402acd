"""
Tests for persistence: gateways, local cache, debounced writer,
startup reconciliation and the session lifecycle.

All storage is in-memory or a fake worksheet; no real API calls.
"""

import asyncio
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from budget_tracker.audit import AuditLogger
from budget_tracker.config import Settings, get_settings, validate_all_settings
from budget_tracker.models.audit import AuditEventType
from budget_tracker.models.ledger import Account, AccountType, DebtType
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.orchestrator import TrackerSession, create_app_components
from budget_tracker.services.storage import (
    GoogleSheetsGateway,
    InMemoryGateway,
    LocalSnapshotCache,
    PersistenceGateway,
    SnapshotFormatError,
    StorageError,
    split_chunks,
)
from budget_tracker.sync import DebouncedWriter, SessionContext, SnapshotReconciler

USER = SessionContext(user_id="user-1")


def _snapshot_with_account(name: str = "Checking") -> LedgerSnapshot:
    snapshot = LedgerSnapshot.fresh()
    account = Account(name=name, type=AccountType.CHECKING, initial_balance=Decimal("10"))
    snapshot.accounts[account.id] = account
    return snapshot


class FailingGateway(PersistenceGateway):
    """Remote store that is always down."""

    def __init__(self):
        self.save_attempts = 0

    async def load(self, user_id):
        raise StorageError("remote unreachable")

    async def save(self, user_id, snapshot):
        self.save_attempts += 1
        raise StorageError("write rejected")


class SlowGateway(InMemoryGateway):
    """Empty remote whose writes take longer than the migration timeout."""

    async def save(self, user_id, snapshot):
        await asyncio.sleep(1)
        return await super().save(user_id, snapshot)


class FirstSaveSlowGateway(InMemoryGateway):
    """Remote whose first write lags behind every later one."""

    def __init__(self):
        super().__init__()
        self._first = True

    async def save(self, user_id, snapshot):
        if self._first:
            self._first = False
            await asyncio.sleep(0.2)
        return await super().save(user_id, snapshot)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the snapshot gateway."""

    def __init__(self):
        self.rows = [["user_id", "updated_at", "chunk_count", "chunk_1"]]
        self.col_count = 4

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def row_values(self, index):
        return list(self.rows[index - 1])

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:])
        self.rows[index - 1] = list(values[0])

    def add_cols(self, count):
        self.col_count += count


class FakeSheetsClient:
    def __init__(self, chunk_size=1000):
        self.settings = SimpleNamespace(chunk_size=chunk_size)
        self.sheet = FakeWorksheet()

    def get_snapshots_sheet(self):
        return self.sheet


@pytest.fixture
def fast_settings(monkeypatch):
    monkeypatch.setenv("PERSISTENCE_DEBOUNCE_MS", "10")
    monkeypatch.setenv("PERSISTENCE_MIGRATION_TIMEOUT_SECONDS", "1")
    return Settings()


class TestGoogleSheetsGateway:
    """Chunked snapshot rows on a fake worksheet."""

    def test_split_chunks(self):
        """Test payloads are split at the chunk size."""
        assert split_chunks("abcdefg", 3) == ["abc", "def", "g"]
        assert split_chunks("", 3) == [""]

    @pytest.mark.asyncio
    async def test_save_and_load_chunked(self):
        """Test a snapshot larger than one cell round-trips."""
        client = FakeSheetsClient(chunk_size=1000)
        gateway = GoogleSheetsGateway(client)
        snapshot = _snapshot_with_account()

        await gateway.save("user-1", snapshot)

        row = client.sheet.rows[1]
        assert row[0] == "user-1"
        assert int(row[2]) > 1
        assert client.sheet.col_count >= len(row)
        assert await gateway.load("user-1") == snapshot

    @pytest.mark.asyncio
    async def test_save_updates_existing_row(self):
        """Test a second save replaces the user's row."""
        client = FakeSheetsClient()
        gateway = GoogleSheetsGateway(client)
        await gateway.save("user-1", LedgerSnapshot.fresh())
        await gateway.save("user-2", LedgerSnapshot.fresh())
        updated = _snapshot_with_account("Renamed")

        await gateway.save("user-1", updated)

        assert len(client.sheet.rows) == 3
        loaded = await gateway.load("user-1")
        assert [account.name for account in loaded.accounts.values()] == ["Renamed"]

    @pytest.mark.asyncio
    async def test_unknown_user_loads_none(self):
        """Test a user with no row has no snapshot."""
        gateway = GoogleSheetsGateway(FakeSheetsClient())
        assert await gateway.load("nobody") is None

    @pytest.mark.asyncio
    async def test_corrupt_row_raises_format_error(self):
        """Test unreadable JSON is a format error, not a crash."""
        client = FakeSheetsClient()
        client.sheet.rows.append(["user-1", "2026-10-15T09:00:00", "1", "{not json"])
        gateway = GoogleSheetsGateway(client)
        with pytest.raises(SnapshotFormatError):
            await gateway.load("user-1")


class TestLocalCache:
    """The device-local JSON copy."""

    def test_missing_file_loads_none(self, tmp_path):
        """Test no cache file means no snapshot."""
        assert LocalSnapshotCache(tmp_path / "snap.json").load() is None

    def test_round_trip(self, tmp_path):
        """Test a saved snapshot loads back equal."""
        cache = LocalSnapshotCache(tmp_path / "nested" / "snap.json")
        snapshot = _snapshot_with_account()
        cache.save(snapshot)
        assert cache.load() == snapshot
        assert not (tmp_path / "nested" / "snap.json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        """Test a corrupt cache raises a format error."""
        path = tmp_path / "snap.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(SnapshotFormatError):
            LocalSnapshotCache(path).load()

    def test_non_utf8_file(self, tmp_path):
        """Test undecodable bytes raise a format error."""
        path = tmp_path / "snap.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with pytest.raises(SnapshotFormatError):
            LocalSnapshotCache(path).load()

    def test_unreadable_path(self, tmp_path):
        """Test a cache path that cannot be read as a file raises a format error."""
        path = tmp_path / "snap.json"
        path.mkdir()
        with pytest.raises(SnapshotFormatError):
            LocalSnapshotCache(path).load()


class TestDebouncedWriter:
    """Coalescing and failure handling."""

    def test_schedule_without_loop_marks_dirty(self):
        """Test scheduling outside an event loop defers to flush."""
        gateway = InMemoryGateway()
        writer = DebouncedWriter(gateway, USER, LedgerSnapshot.fresh)
        writer.schedule()
        assert writer.dirty
        assert not writer.has_pending_timer
        assert gateway.save_count == 0

    @pytest.mark.asyncio
    async def test_burst_becomes_one_save(self):
        """Test many schedules inside the delay produce one write."""
        gateway = InMemoryGateway()
        snapshot = _snapshot_with_account()
        writer = DebouncedWriter(gateway, USER, lambda: snapshot, delay_seconds=0.01)

        for _ in range(5):
            writer.schedule()
        await asyncio.sleep(0.1)

        assert gateway.save_count == 1
        assert not writer.dirty
        assert LedgerSnapshot.from_document(gateway.document("user-1")) == snapshot

    @pytest.mark.asyncio
    async def test_flush_writes_immediately(self, tmp_path):
        """Test flush saves now and refreshes the local cache."""
        gateway = InMemoryGateway()
        cache = LocalSnapshotCache(tmp_path / "snap.json")
        snapshot = _snapshot_with_account()
        writer = DebouncedWriter(gateway, USER, lambda: snapshot, delay_seconds=10, local_cache=cache)

        writer.schedule()
        assert await writer.flush()

        assert gateway.save_count == 1
        assert not writer.has_pending_timer
        assert cache.load() == snapshot

    @pytest.mark.asyncio
    async def test_clean_flush_skips_write(self):
        """Test flushing with nothing changed does not write."""
        gateway = InMemoryGateway()
        writer = DebouncedWriter(gateway, USER, LedgerSnapshot.fresh)
        assert await writer.flush()
        assert gateway.save_count == 0

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_audited(self):
        """Test a failed save is logged, audited and stays dirty."""
        gateway = FailingGateway()
        audit = AuditLogger()
        writer = DebouncedWriter(gateway, USER, LedgerSnapshot.fresh, audit=audit)

        writer.schedule()
        assert await writer.flush() is False

        assert writer.dirty
        assert audit.recent_events(AuditEventType.SAVE_FAILED)

    @pytest.mark.asyncio
    async def test_close_cancels_timer(self):
        """Test close stops a pending save."""
        gateway = InMemoryGateway()
        writer = DebouncedWriter(gateway, USER, LedgerSnapshot.fresh, delay_seconds=0.01)
        writer.schedule()
        await writer.close()
        await asyncio.sleep(0.05)
        assert gateway.save_count == 0
        assert writer.dirty

    @pytest.mark.asyncio
    async def test_slow_save_never_overwrites_newer_one(self):
        """Test a flush during a slow timer-driven save lands last."""
        gateway = FirstSaveSlowGateway()
        snapshot = _snapshot_with_account("A")
        writer = DebouncedWriter(gateway, USER, lambda: snapshot, delay_seconds=0.01)

        writer.schedule()
        await asyncio.sleep(0.05)
        assert gateway.save_count == 0

        account = Account(name="B", type=AccountType.SAVINGS)
        snapshot.accounts[account.id] = account
        writer.schedule()
        assert await writer.flush()
        await writer.close()

        stored = LedgerSnapshot.from_document(gateway.document("user-1"))
        assert sorted(a.name for a in stored.accounts.values()) == ["A", "B"]
        assert gateway.save_count == 2
        assert not writer.dirty

    @pytest.mark.asyncio
    async def test_close_waits_for_save_in_flight(self):
        """Test close returns only after a running save has finished."""
        gateway = FirstSaveSlowGateway()
        snapshot = _snapshot_with_account()
        writer = DebouncedWriter(gateway, USER, lambda: snapshot, delay_seconds=0.01)

        writer.schedule()
        await asyncio.sleep(0.05)
        await writer.close()

        assert gateway.save_count == 1
        assert not writer.dirty


class TestReconciler:
    """Choosing the starting snapshot."""

    @pytest.mark.asyncio
    async def test_remote_wins(self):
        """Test remote data beats local data."""
        gateway = InMemoryGateway()
        remote = _snapshot_with_account("Remote")
        await gateway.save("user-1", remote)

        chosen = await SnapshotReconciler(gateway).reconcile(USER, _snapshot_with_account("Local"))

        assert [account.name for account in chosen.accounts.values()] == ["Remote"]

    @pytest.mark.asyncio
    async def test_local_migrated_when_remote_empty(self):
        """Test local data is pushed once to an empty remote."""
        gateway = InMemoryGateway()
        audit = AuditLogger()
        local = _snapshot_with_account("Local")

        chosen = await SnapshotReconciler(gateway, audit=audit).reconcile(USER, local)

        assert chosen is local
        assert gateway.save_count == 1
        assert audit.recent_events(AuditEventType.SNAPSHOT_MIGRATED)

    @pytest.mark.asyncio
    async def test_both_empty_no_migration(self):
        """Test nothing is written when neither side has data."""
        gateway = InMemoryGateway()
        await SnapshotReconciler(gateway).reconcile(USER, LedgerSnapshot.fresh())
        assert gateway.save_count == 0

    @pytest.mark.asyncio
    async def test_migration_timeout_keeps_local(self):
        """Test a slow migration gives up and keeps local data."""
        gateway = SlowGateway()
        audit = AuditLogger()
        local = _snapshot_with_account()

        chosen = await SnapshotReconciler(gateway, audit=audit, migration_timeout=0.01).reconcile(USER, local)

        assert chosen is local
        assert gateway.document("user-1") is None
        assert audit.recent_events(AuditEventType.SAVE_FAILED)

    @pytest.mark.asyncio
    async def test_load_failure_falls_back_to_local(self):
        """Test an unreachable remote never blocks startup."""
        local = _snapshot_with_account()
        chosen = await SnapshotReconciler(FailingGateway()).reconcile(USER, local)
        assert chosen is local


class TestTrackerSession:
    """Session start, mutation and close."""

    @pytest.mark.asyncio
    async def test_changes_persist_across_sessions(self, clock, fast_settings):
        """Test a mutation is saved and visible to the next session."""
        gateway = InMemoryGateway()
        session = TrackerSession(USER, gateway, settings=fast_settings, clock=clock)
        engine = await session.start()
        checking = engine.add_account("Checking", AccountType.CHECKING, Decimal("100"))
        assert await session.close()

        reopened = TrackerSession(USER, gateway, settings=fast_settings, clock=clock)
        engine = await reopened.start()
        assert engine.get_account(checking.id).name == "Checking"

    @pytest.mark.asyncio
    async def test_debounced_save_during_session(self, clock, fast_settings):
        """Test edits reach the remote without an explicit flush."""
        gateway = InMemoryGateway()
        session = TrackerSession(USER, gateway, settings=fast_settings, clock=clock)
        engine = await session.start()

        engine.add_account("Checking", AccountType.CHECKING)
        engine.add_account("Savings", AccountType.SAVINGS)
        await asyncio.sleep(0.1)

        assert gateway.save_count == 1
        assert len(gateway.document("user-1")["accounts"]) == 2

    @pytest.mark.asyncio
    async def test_startup_repairs_drift(self, clock, fast_settings):
        """Test stored debt drift is repaired when a session starts."""
        gateway = InMemoryGateway()
        first = TrackerSession(USER, gateway, settings=fast_settings, clock=clock)
        engine = await first.start()
        card = engine.add_account("Visa", AccountType.CREDIT_CARD)
        engine.add_transaction("2026-10-15", {"type": "spending", "amount": "40", "account_id": card.id})
        await first.close()

        document = gateway.document("user-1")
        debt_id = next(iter(document["debts"]))
        document["debts"][debt_id]["current_balance"] = "999.00"

        second = TrackerSession(USER, gateway, settings=fast_settings, clock=clock)
        engine = await second.start()

        assert engine.get_debt_balance(debt_id) == Decimal("40")
        assert engine.get_debt(debt_id).type == DebtType.CREDIT_CARD
        assert second.writer.dirty
        await second.close()
        assert Decimal(gateway.document("user-1")["debts"][debt_id]["current_balance"]) == Decimal("40")

    @pytest.mark.asyncio
    async def test_offline_start(self, clock, fast_settings, tmp_path):
        """Test a session starts from the local cache when remote is down."""
        cache = LocalSnapshotCache(tmp_path / "snap.json")
        cache.save(_snapshot_with_account("Cached"))
        gateway = FailingGateway()

        session = TrackerSession(USER, gateway, local_cache=cache, settings=fast_settings, clock=clock)
        engine = await session.start()

        assert [account.name for account in engine.accounts] == ["Cached"]
        engine.add_account("New", AccountType.SAVINGS)
        assert await session.close() is False
        assert len(cache.load().accounts) == 2

    @pytest.mark.asyncio
    async def test_undecodable_cache_starts_fresh(self, clock, fast_settings, tmp_path):
        """Test a cache file of garbage bytes does not block startup."""
        path = tmp_path / "snap.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        session = TrackerSession(
            USER,
            InMemoryGateway(),
            local_cache=LocalSnapshotCache(path),
            settings=fast_settings,
            clock=clock,
        )

        engine = await session.start()

        assert engine.accounts == []
        assert await session.close()

    def test_engine_requires_start(self):
        """Test the engine is unavailable before start()."""
        session = TrackerSession(USER, InMemoryGateway())
        with pytest.raises(RuntimeError):
            _ = session.engine

    def test_factory_without_storage(self):
        """Test the factory wires an in-memory session."""
        session = create_app_components("user-9", use_storage=False)
        assert session.session.user_id == "user-9"


@pytest.fixture
def sheets_backend(monkeypatch, tmp_path):
    """Environment selecting the Google Sheets backend, credentials unset."""
    monkeypatch.setenv("PERSISTENCE_BACKEND", "google_sheets")
    monkeypatch.setenv("PERSISTENCE_LOCAL_CACHE_PATH", str(tmp_path / "snap.json"))
    monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
    monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestSettingsCheck:
    """Settings validation and the factory's backend choice."""

    def test_missing_sheets_settings_reported(self, sheets_backend):
        """Test absent Google Sheets settings are flagged with the reason."""
        status = validate_all_settings()
        assert status["ledger"] and status["persistence"] and status["app"]
        assert status["google_sheets"] is False
        assert "google_sheets_error" in status

    def test_configured_sheets_settings_pass(self, sheets_backend, monkeypatch):
        """Test complete Google Sheets settings validate."""
        credentials = sheets_backend / "service_account.json"
        credentials.write_text("{}", encoding="utf-8")
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")
        assert validate_all_settings()["google_sheets"] is True

    def test_memory_backend_skips_sheets_check(self, sheets_backend, monkeypatch):
        """Test Google Sheets settings are not required for the memory backend."""
        monkeypatch.setenv("PERSISTENCE_BACKEND", "memory")
        assert "google_sheets" not in validate_all_settings()

    def test_factory_falls_back_when_unconfigured(self, sheets_backend):
        """Test an unconfigured remote leaves the session on local data."""
        session = create_app_components("user-9")
        assert isinstance(session.gateway, InMemoryGateway)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
