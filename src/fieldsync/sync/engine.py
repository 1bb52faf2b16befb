"""
SyncEngine: drains the mutation queue into the remote transport.

Flow for one pass (sync_all / sync_delta):
  1. Refuse if another pass is running (SyncAlreadyRunningError)
  2. Check connectivity; refuse if down (NoConnectivityError), queue untouched
  3. Fetch up to batch_size pending rows, oldest first
  4. For each row, in order: mark in-progress → decode → dispatch →
     mark completed, or mark failed and schedule a backoff retry if the
     row still has attempts left
  5. Return a SyncResult and report "complete"

Item failures never abort the batch. Steps 1 and 2 are the only hard
failures: an overlapping request is refused before any event is reported,
while a failed network check reports "error" and re-raises.

Progress percentages: 0 checking network, 5 fetching queue, 10–95 across
the batch, 100 complete.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional

from fieldsync.config import SyncConfig
from fieldsync.models.mutation import decode_mutation
from fieldsync.models.queue import SyncQueueItem, SyncStatus
from fieldsync.models.sync import (
    CurrentItem,
    SyncItemError,
    SyncPhase,
    SyncProgress,
    SyncResult,
    SyncStatistics,
)
from fieldsync.network.monitor import NetworkMonitor
from fieldsync.queue.store import SyncQueueStore
from fieldsync.sync.conflict import Timestamp, Winner, resolve_conflict, to_utc
from fieldsync.sync.errors import NoConnectivityError, SyncAlreadyRunningError
from fieldsync.sync.progress import ProgressCallback, ProgressReporter
from fieldsync.sync.retry import RetryScheduler, backoff_delay_ms
from fieldsync.transport.base import RemoteTimeoutError, RemoteTransport

logger = logging.getLogger(__name__)


class SyncEngine:
    """Runs sync passes. At most one pass is active per engine instance."""

    def __init__(
        self,
        store: SyncQueueStore,
        network: NetworkMonitor,
        transport: RemoteTransport,
        config: Optional[SyncConfig] = None,
        reporter: Optional[ProgressReporter] = None,
        sleep=asyncio.sleep,
    ):
        """
        Args:
            store: Mutation queue.
            network: Monitor used for the pre-pass connectivity check.
            transport: Receives one dispatch per queue row.
            config: Engine configuration (defaults if omitted).
            reporter: Shared progress reporter (a private one if omitted).
            sleep: Delay used by backoff retries, injectable for tests.
        """
        self.store = store
        self.network = network
        self.transport = transport
        self.config = config or SyncConfig()
        self.reporter = reporter or ProgressReporter()
        self.retries = RetryScheduler(
            requeue=store.requeue, trigger=self._retry_pass, sleep=sleep
        )
        self._sync_in_progress = False

    # ─── State ────────────────────────────────────────────────────────────────

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    def is_syncing(self) -> bool:
        return self._sync_in_progress

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        return self.reporter.subscribe(callback)

    # ─── Passes ───────────────────────────────────────────────────────────────

    async def sync_all(self, on_progress: Optional[ProgressCallback] = None) -> SyncResult:
        """Sync up to batch_size pending rows.

        Raises:
            SyncAlreadyRunningError: another pass is active.
            NoConnectivityError: the network check reported disconnected.
        """
        return await self._run_pass(on_progress=on_progress)

    async def sync_delta(
        self, since: Timestamp, on_progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Like sync_all, restricted to rows created strictly after `since`."""
        since_utc = to_utc(since).replace(tzinfo=None)  # queue stores naive UTC
        logger.info("Starting delta sync (since %s)", since_utc.isoformat())
        return await self._run_pass(on_progress=on_progress, since=since_utc)

    async def retry_failed(self) -> SyncResult:
        """Reset every failed row to pending, then run a full pass."""
        reset = self.store.reset_failed()
        logger.info("Retrying %d failed items", reset)
        return await self.sync_all()

    async def _retry_pass(self) -> SyncResult:
        return await self.sync_all()

    async def _run_pass(
        self,
        on_progress: Optional[ProgressCallback] = None,
        since: Optional[datetime] = None,
    ) -> SyncResult:
        # Overlapping requests are refused without reporting any event
        if self._sync_in_progress:
            logger.info("Sync already in progress, skipping")
            raise SyncAlreadyRunningError("Sync already in progress")

        self._sync_in_progress = True
        unsubscribe = self.reporter.subscribe(on_progress) if on_progress else None
        try:
            return await self._pass_body(since)
        except Exception as exc:
            logger.error("Sync failed: %s", exc)
            self.reporter.report(SyncProgress(
                phase=SyncPhase.ERROR,
                message=f"Sync failed: {exc}",
            ))
            raise
        finally:
            self._sync_in_progress = False
            if unsubscribe:
                unsubscribe()

    async def _pass_body(self, since: Optional[datetime]) -> SyncResult:
        started = time.monotonic()

        self.reporter.report(SyncProgress(
            phase=SyncPhase.CHECKING_NETWORK,
            percentage=0,
            message="Checking network connectivity...",
        ))
        state = await self.network.check()
        if not state.is_connected:
            logger.info("No network connection, skipping sync")
            raise NoConnectivityError("No internet connection available")

        self.reporter.report(SyncProgress(
            phase=SyncPhase.FETCHING_QUEUE,
            percentage=5,
            message="Fetching pending sync items...",
        ))
        items = self.store.get_pending_sync_items(self.config.batch_size, since=since)

        if not items:
            logger.info("No items to sync")
            self.reporter.report(SyncProgress(
                phase=SyncPhase.COMPLETE,
                percentage=100,
                message="No items to sync",
            ))
            return SyncResult.empty(duration_ms=_elapsed_ms(started))

        logger.info("Processing %d items...", len(items))
        result = await self._process_batch(items, started)

        self.reporter.report(SyncProgress(
            phase=SyncPhase.COMPLETE,
            total_items=result.total_items,
            processed_items=result.total_items,
            success_count=result.success_count,
            failed_count=result.failed_count,
            percentage=100,
            message=(
                f"Sync completed: {result.success_count} succeeded, "
                f"{result.failed_count} failed ({round(result.duration_ms / 1000)}s)"
            ),
        ))
        logger.info(
            "Sync completed: %d/%d succeeded in %dms",
            result.success_count, result.total_items, result.duration_ms,
        )
        return result

    async def _process_batch(self, items: List[SyncQueueItem], started: float) -> SyncResult:
        total = len(items)
        success_count = 0
        failed_count = 0
        errors: List[SyncItemError] = []

        for index, item in enumerate(items):
            try:
                await self._sync_item(item)
            except Exception as exc:
                failed_count += 1
                message = str(exc) or type(exc).__name__
                failed_row = self._handle_failure(item, message)
                errors.append(SyncItemError(item=failed_row, error=message))
            else:
                self.store.update_sync_queue_item(item.id, SyncStatus.COMPLETED)
                success_count += 1
                logger.info(
                    "Synced %s:%s (%s)", item.table_name, item.record_id, item.operation
                )

            processed = index + 1
            self.reporter.report(SyncProgress(
                phase=SyncPhase.SYNCING,
                total_items=total,
                processed_items=processed,
                success_count=success_count,
                failed_count=failed_count,
                percentage=10 + (processed * 85) // total,
                message=f"Synced {processed}/{total}: {item.table_name} {item.operation}",
                current_item=CurrentItem(item.table_name, item.record_id, item.operation),
            ))

        return SyncResult(
            success=failed_count == 0,
            total_items=total,
            success_count=success_count,
            failed_count=failed_count,
            duration_ms=_elapsed_ms(started),
            errors=tuple(errors),
        )

    async def _sync_item(self, item: SyncQueueItem) -> None:
        """Mark in-progress, decode and dispatch one row. Raises on failure."""
        self.store.update_sync_queue_item(item.id, SyncStatus.IN_PROGRESS)
        mutation = decode_mutation(item)

        timeout = self.config.item_timeout_seconds
        try:
            await asyncio.wait_for(self.transport.dispatch(mutation), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteTimeoutError(
                f"Dispatch of {item.table_name}:{item.record_id} timed out after {timeout}s"
            ) from exc

    def _handle_failure(self, item: SyncQueueItem, message: str) -> SyncQueueItem:
        """Record a failed attempt; schedule a backoff retry if attempts remain.

        Returns:
            The row as stored after the failure.
        """
        failed_row = self.store.update_sync_queue_item(item.id, SyncStatus.FAILED, message)

        if failed_row.attempts >= self.config.max_retries:
            logger.error(
                "Failed %s:%s after %d attempts (max retries reached): %s",
                item.table_name, item.record_id, failed_row.attempts, message,
            )
            return failed_row

        delay = backoff_delay_ms(
            item.attempts,
            self.config.initial_retry_delay_ms,
            self.config.max_retry_delay_ms,
        )
        logger.warning(
            "Retry %d/%d for %s:%s in %dms: %s",
            failed_row.attempts, self.config.max_retries,
            item.table_name, item.record_id, delay, message,
        )
        self.retries.schedule(item.id, delay)
        return failed_row

    # ─── Maintenance & diagnostics ────────────────────────────────────────────

    def cleanup_completed(self) -> int:
        """Delete completed rows. Returns the number removed."""
        count = self.store.cleanup_sync_queue()
        logger.info("Cleaned up %d completed sync items", count)
        return count

    def resolve_conflict(self, item: SyncQueueItem, remote_updated_at: Timestamp) -> Winner:
        return resolve_conflict(item, remote_updated_at)

    def get_statistics(self) -> SyncStatistics:
        by_table = {}
        rows = self.store.count_by_table_and_status([SyncStatus.PENDING, SyncStatus.FAILED])
        for row in rows:
            counts = by_table.setdefault(row["table_name"], {"pending": 0, "failed": 0})
            counts[row["status"]] = row["count"]

        return SyncStatistics(
            total_pending=self.store.get_sync_queue_count(SyncStatus.PENDING),
            total_failed=self.store.get_sync_queue_count(SyncStatus.FAILED),
            total_completed=self.store.get_sync_queue_count(SyncStatus.COMPLETED),
            by_table=by_table,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
