"""Shared test fixtures."""
import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Set

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import models so SQLModel.metadata knows about them
from fieldsync.models.queue import SyncOperation, SyncQueueItem  # noqa: F401
from fieldsync.config import SyncConfig
from fieldsync.models.mutation import Mutation
from fieldsync.models.sync import NetworkState
from fieldsync.network.monitor import NetworkMonitor
from fieldsync.network.sources import StaticConnectivitySource
from fieldsync.queue.store import SyncQueueStore
from fieldsync.sync.engine import SyncEngine
from fieldsync.transport.base import RemoteTransport, TransportError

ONLINE = NetworkState(is_connected=True, is_internet_reachable=True, type="wifi")
OFFLINE = NetworkState(is_connected=False, is_internet_reachable=False, type="none")


class StepClock:
    """Deterministic clock: each call returns a time one second later."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 8, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


class FakeTransport(RemoteTransport):
    """
    Deterministic transport.

    fail_records: record ids whose dispatch raises TransportError.
    always_fail: every dispatch raises.
    gate: if set, dispatch waits on this event before returning.
    """

    def __init__(self, fail_records: Optional[Set[str]] = None, always_fail: bool = False):
        self.fail_records = set(fail_records or ())
        self.always_fail = always_fail
        self.gate: Optional[asyncio.Event] = None
        self.dispatched: List[Mutation] = []
        self.closed = False

    async def dispatch(self, mutation: Mutation) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.dispatched.append(mutation)
        if self.always_fail or mutation.record_id in self.fail_records:
            raise TransportError(f"remote rejected {mutation.record_id}")

    async def close(self) -> None:
        self.closed = True


async def never_sleep(_seconds: float) -> None:
    """Backoff sleep that never finishes; retries stay scheduled until cancelled."""
    await asyncio.Event().wait()


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> StepClock:
    return StepClock()


@pytest.fixture(name="store")
def store_fixture(engine, clock) -> SyncQueueStore:
    return SyncQueueStore(engine, clock=clock)


@pytest.fixture(name="source")
def source_fixture() -> StaticConnectivitySource:
    return StaticConnectivitySource(ONLINE)


@pytest.fixture(name="monitor")
def monitor_fixture(source) -> NetworkMonitor:
    return NetworkMonitor(source)


@pytest.fixture(name="transport")
def transport_fixture() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(name="sync_config")
def sync_config_fixture() -> SyncConfig:
    return SyncConfig(
        auto_start_enabled=False,
        max_retries=3,
        initial_retry_delay_ms=1000,
        max_retry_delay_ms=8000,
        batch_size=50,
        item_timeout_seconds=5.0,
    )


@pytest_asyncio.fixture(name="sync_engine")
async def sync_engine_fixture(store, monitor, transport, sync_config):
    """SyncEngine whose backoff retries never fire on their own."""
    sync_engine = SyncEngine(store, monitor, transport, config=sync_config, sleep=never_sleep)
    yield sync_engine
    sync_engine.retries.cancel_all()
    await asyncio.sleep(0)


def enqueue_many(store: SyncQueueStore, count: int, table: str = "inspections"):
    """Enqueue `count` INSERTs with record ids rec-0..rec-(count-1)."""
    return [
        store.enqueue(table, f"rec-{i}", SyncOperation.INSERT, {"id": f"rec-{i}", "n": i})
        for i in range(count)
    ]
