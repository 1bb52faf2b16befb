"""
SyncService: lifecycle and public surface of the sync subsystem.

Owns the engine, the network monitor and the recurring timer:

    service = SyncService(store, monitor, transport)
    await service.initialize(batch_size=20)   # monitor on, auto sync if enabled
    unsubscribe = service.on_progress(print)
    result = await service.sync_all()
    await service.shutdown()                  # timer off, waits for the pass

Timer state (running / stopped) is independent of whether a pass is
currently executing.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fieldsync.config import Settings, SyncConfig, get_settings
from fieldsync.models.sync import NetworkState, SyncResult, SyncStatistics
from fieldsync.models.queue import SyncStatus
from fieldsync.network.monitor import NetworkMonitor
from fieldsync.network.sources import HttpProbeSource, StaticConnectivitySource
from fieldsync.queue.store import SyncQueueStore
from fieldsync.scheduler.jobs import build_scheduler
from fieldsync.sync.conflict import Timestamp, Winner
from fieldsync.sync.engine import SyncEngine
from fieldsync.sync.errors import SyncError
from fieldsync.sync.progress import ProgressCallback
from fieldsync.transport.base import RemoteTransport
from fieldsync.transport.http_transport import HttpTransport
from fieldsync.transport.mock import MockTransport

logger = logging.getLogger(__name__)

SHUTDOWN_POLL_SECONDS = 0.5
SHUTDOWN_MAX_WAIT_SECONDS = 5.0


@dataclass(frozen=True)
class SyncStatusReport:
    is_running: bool
    network_state: NetworkState
    sync_in_progress: bool
    config: SyncConfig
    pending_items: int
    failed_items: int


class SyncService:
    def __init__(
        self,
        store: SyncQueueStore,
        monitor: NetworkMonitor,
        transport: RemoteTransport,
        config: Optional[SyncConfig] = None,
        scheduler_factory: Callable[..., AsyncIOScheduler] = build_scheduler,
        sleep=asyncio.sleep,
    ):
        """
        Args:
            store: Mutation queue.
            monitor: Network monitor; its restore hook is pointed at sync_all.
            transport: Remote transport handed to the engine.
            config: Base configuration; initialize() may override fields.
            scheduler_factory: Builds the recurring-timer scheduler.
            sleep: Delay used for backoff retries, injectable for tests.
        """
        self.store = store
        self.monitor = monitor
        self.transport = transport
        self.engine = SyncEngine(store, monitor, transport, config=config, sleep=sleep)
        self.monitor.on_restored = self._sync_on_restore
        self._scheduler_factory = scheduler_factory
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def config(self) -> SyncConfig:
        return self.engine.config

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def initialize(self, **overrides: Any) -> None:
        """Apply config overrides, start network monitoring, auto sync if enabled."""
        logger.info("Initializing sync service...")
        if overrides:
            self.engine.config = self.engine.config.merged(**overrides)

        recovered = self.store.recover_interrupted()
        if recovered:
            logger.warning("Marked %d interrupted items as failed", recovered)

        self.monitor.start()

        if self.config.auto_start_enabled:
            await self.start_auto_sync()
        logger.info("Sync service initialized")

    async def start_auto_sync(self) -> None:
        """(Re)start the recurring timer and run one pass immediately."""
        if self._scheduler is not None:
            logger.info("Auto sync already running, restarting timer")
            self.stop_auto_sync()

        logger.info(
            "Starting auto sync (interval: %s minutes)", self.config.sync_interval_minutes
        )
        self._scheduler = self._scheduler_factory(
            self.engine, self.config.sync_interval_minutes
        )
        self._scheduler.start()

        try:
            await self.engine.sync_all()
        except SyncError as exc:
            logger.info("Initial auto sync skipped: %s", exc)

    def stop_auto_sync(self) -> None:
        """Stop the recurring timer. Safe to call when not running."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Auto sync stopped")

    async def shutdown(
        self,
        poll_interval: float = SHUTDOWN_POLL_SECONDS,
        max_wait: float = SHUTDOWN_MAX_WAIT_SECONDS,
    ) -> None:
        """Stop timers and monitoring, wait (bounded) for the active pass, drop listeners.

        Triggers that have not started a pass yet are cancelled. A pass that is
        already running, whoever started it, is never cancelled: shutdown waits
        up to max_wait for it and then returns with the pass still running.
        """
        logger.info("Shutting down sync service...")
        self.stop_auto_sync()
        self.monitor.stop()
        cancelled = self.engine.retries.cancel_delayed()

        waited = 0.0
        while self.engine.is_syncing() and waited < max_wait:
            await asyncio.sleep(poll_interval)
            waited += poll_interval
        if self.engine.is_syncing():
            logger.warning("Sync pass still running after %.1fs, not waiting further", waited)

        # Retries scheduled by the pass we waited for
        cancelled += self.engine.retries.cancel_delayed()
        if cancelled:
            logger.info("Cancelled %d scheduled retries", cancelled)

        self.engine.reporter.clear()
        await self.transport.close()
        close_source = getattr(self.monitor.source, "close", None)
        if close_source is not None:
            await close_source()
        logger.info("Sync service shut down")

    async def _sync_on_restore(self) -> SyncResult:
        return await self.engine.sync_all()

    # ─── Operations ───────────────────────────────────────────────────────────

    async def sync_all(self, on_progress: Optional[ProgressCallback] = None) -> SyncResult:
        return await self.engine.sync_all(on_progress)

    async def sync_delta(self, since: Timestamp) -> SyncResult:
        return await self.engine.sync_delta(since)

    async def retry_failed(self) -> SyncResult:
        return await self.engine.retry_failed()

    def cleanup_completed(self) -> int:
        return self.engine.cleanup_completed()

    def resolve_conflict(self, item, remote_updated_at: Timestamp) -> Winner:
        return self.engine.resolve_conflict(item, remote_updated_at)

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        return self.engine.on_progress(callback)

    # ─── Status ───────────────────────────────────────────────────────────────

    async def get_status(self) -> SyncStatusReport:
        return SyncStatusReport(
            is_running=self.is_running,
            network_state=self.monitor.get_state(),
            sync_in_progress=self.engine.is_syncing(),
            config=self.config,
            pending_items=self.store.get_sync_queue_count(SyncStatus.PENDING),
            failed_items=self.store.get_sync_queue_count(SyncStatus.FAILED),
        )

    def get_statistics(self) -> SyncStatistics:
        return self.engine.get_statistics()

    def get_network_state(self) -> NetworkState:
        return self.monitor.get_state()

    def is_syncing(self) -> bool:
        return self.engine.is_syncing()


def build_transport(settings: Settings) -> RemoteTransport:
    """HTTP transport when a remote base URL is configured, otherwise the mock."""
    if settings.remote_base_url:
        return HttpTransport(
            settings.remote_base_url,
            api_token=settings.remote_api_token,
            timeout=settings.remote_timeout_seconds,
        )
    logger.warning("REMOTE_BASE_URL not set, using mock transport")
    return MockTransport(
        latency_ms=settings.mock_latency_ms,
        failure_rate=settings.mock_failure_rate,
    )


def build_service(settings: Optional[Settings] = None, engine=None) -> SyncService:
    """Wire a SyncService from settings.

    Args:
        settings: Defaults to get_settings().
        engine: SQLAlchemy engine; defaults to fieldsync.db.engine.get_engine().
    """
    settings = settings or get_settings()
    if engine is None:
        from fieldsync.db.engine import get_engine
        engine = get_engine()

    if settings.connectivity_probe_url:
        source = HttpProbeSource(
            settings.connectivity_probe_url,
            interval_seconds=settings.connectivity_probe_interval_seconds,
        )
    else:
        source = StaticConnectivitySource()

    return SyncService(
        store=SyncQueueStore(engine),
        monitor=NetworkMonitor(source),
        transport=build_transport(settings),
        config=SyncConfig.from_settings(settings),
    )
