"""Shared fixtures: in-memory database, store, controllable clock and fake collaborators."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import SQLModel

from chartwatch.database import create_db_and_tables, make_engine
from chartwatch.engine.run_job import RunExecutor
from chartwatch.engine.store import ScheduleStore
from chartwatch.services.analysis import AnalysisError, AnalysisResult
from chartwatch.services.telegram_bot import NotificationResult

T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta):
        self.now = self.now + delta


class FakeProvider:
    """Returns queued results (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def analyze(self, target_ref: str) -> AnalysisResult:
        self.calls.append(target_ref)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeNotifier:
    def __init__(self, result: NotificationResult | None = None):
        self.result = result or NotificationResult(success=True)
        self.sent: list[tuple[str, str]] = []

    async def send(self, chat_id: str, message: str) -> NotificationResult:
        self.sent.append((chat_id, message))
        return self.result

    async def test_connection(self, chat_id: str) -> NotificationResult:
        return await self.send(chat_id, "test")

    async def close(self):
        pass


def signal(action: str, confidence: int, analysis_id: str = "an-1") -> AnalysisResult:
    return AnalysisResult(action=action, confidence=confidence, analysis_id=analysis_id)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    create_db_and_tables(eng)
    yield eng
    SQLModel.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def store(engine) -> ScheduleStore:
    return ScheduleStore(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_executor(store, clock):
    def _make(provider, notifier=None, **kwargs) -> RunExecutor:
        return RunExecutor(
            store=store,
            provider=provider,
            notifier=notifier or FakeNotifier(),
            analysis_timeout=kwargs.pop("analysis_timeout", 5),
            notify_timeout=kwargs.pop("notify_timeout", 5),
            lease_ttl=kwargs.pop("lease_ttl", timedelta(minutes=15)),
            clock=clock,
        )
    return _make


@pytest.fixture
def schedule(store):
    """A permissive 1h schedule with Telegram configured for its owner."""
    sched = store.upsert_schedule(
        "user-1", "layout-eurusd",
        label="EURUSD 1h",
        frequency="1h",
        min_confidence=0,
        send_on_hold=True,
        only_on_signal_change=False,
        send_to_telegram=True,
    )
    store.upsert_telegram_config("user-1", "12345")
    return sched
