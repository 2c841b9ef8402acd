"""Shared fixtures: a pinned clock and an engine built on it."""

from datetime import datetime, timedelta

import pytest

from budget_tracker.audit import AuditLogger
from budget_tracker.config import LedgerSettings
from budget_tracker.ledger.engine import LedgerEngine

FIXED_NOW = datetime(2026, 10, 15, 9, 0)


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def engine(clock, ledger_settings, audit):
    return LedgerEngine(clock=clock, settings=ledger_settings, audit=audit)
