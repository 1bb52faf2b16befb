"""
SyncQueueStore: the mutation queue's persistence contract.

The sync engine only ever touches the queue through this class:
  - read a batch of pending rows (oldest first)
  - write one row's status at a time (each update is its own commit)
  - count rows by status / table
  - bulk maintenance (reset failed, delete completed, recover interrupted)

No transaction is held across items, so a crash mid-pass leaves completed
rows completed, at most one row in-progress, and the rest pending.
"""
import json
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, delete, func, text, update
from sqlmodel import Session, col, select

from fieldsync.models.queue import (
    SyncOperation,
    SyncQueueItem,
    SyncStatus,
    as_naive_utc,
    utcnow,
)

INTERRUPTED_ERROR = "Interrupted before completion"


class SyncQueueStore:
    """SQLModel-backed mutation queue."""

    def __init__(self, engine, clock: Callable[[], datetime] = utcnow):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Returns the current time, naive UTC or aware; injectable
                for tests. Aware values are stored as naive UTC.
        """
        self.engine = engine
        self.clock = clock

    def _now(self) -> datetime:
        return as_naive_utc(self.clock())

    # ─── Write side ───────────────────────────────────────────────────────────

    def enqueue(
        self,
        table_name: str,
        record_id: str,
        operation: SyncOperation,
        payload: Dict[str, Any],
    ) -> SyncQueueItem:
        """Append a pending change. Returns the persisted row (id assigned)."""
        item = SyncQueueItem(
            table_name=table_name,
            record_id=record_id,
            operation=SyncOperation(operation).value,
            payload=json.dumps(payload, default=str),
            created_at=self._now(),
            attempts=0,
            status=SyncStatus.PENDING.value,
        )
        with Session(self.engine) as s:
            s.add(item)
            s.commit()
            s.refresh(item)
        return item

    # ─── Reads ────────────────────────────────────────────────────────────────

    def get_pending_sync_items(
        self, limit: int, since: Optional[datetime] = None
    ) -> List[SyncQueueItem]:
        """Pending rows, oldest first, at most `limit`.

        Args:
            limit: Maximum number of rows to return.
            since: If given, only rows created strictly after this instant.
        """
        stmt = select(SyncQueueItem).where(
            SyncQueueItem.status == SyncStatus.PENDING.value
        )
        if since is not None:
            stmt = stmt.where(SyncQueueItem.created_at > as_naive_utc(since))
        stmt = stmt.order_by(
            col(SyncQueueItem.created_at).asc(), col(SyncQueueItem.id).asc()
        ).limit(limit)

        with Session(self.engine) as s:
            return list(s.exec(stmt).all())

    def get_item(self, item_id: int) -> Optional[SyncQueueItem]:
        with Session(self.engine) as s:
            return s.get(SyncQueueItem, item_id)

    def get_sync_queue_count(self, status: Optional[SyncStatus] = None) -> int:
        stmt = select(func.count()).select_from(SyncQueueItem)
        if status is not None:
            stmt = stmt.where(SyncQueueItem.status == SyncStatus(status).value)
        with Session(self.engine) as s:
            return int(s.exec(stmt).one())

    def count_by_table_and_status(
        self, statuses: Iterable[SyncStatus]
    ) -> List[Dict[str, Any]]:
        """Row counts grouped by table and status, restricted to `statuses`.

        Returns:
            A list of {"table_name", "status", "count"} dicts.
        """
        values = [SyncStatus(st).value for st in statuses]
        if not values:
            return []
        query = text(
            "SELECT table_name, status, COUNT(*) AS count "
            "FROM syncqueueitem "
            "WHERE status IN :statuses "
            "GROUP BY table_name, status "
            "ORDER BY table_name"
        ).bindparams(bindparam("statuses", expanding=True))
        with Session(self.engine) as s:
            rows = s.connection().execute(query, {"statuses": values})
            return [dict(row._mapping) for row in rows]

    # ─── Status updates ───────────────────────────────────────────────────────

    def update_sync_queue_item(
        self, item_id: int, status: SyncStatus, error: Optional[str] = None
    ) -> SyncQueueItem:
        """Set one row's status and stamp last_attempt_at.

        `error` replaces the stored error (None clears it). A transition to
        failed increments attempts; no other transition touches it.

        Raises:
            KeyError: if no row has this id.
        """
        status = SyncStatus(status)
        with Session(self.engine) as s:
            item = s.get(SyncQueueItem, item_id)
            if item is None:
                raise KeyError(f"Sync queue item {item_id} not found")
            item.status = status.value
            item.error = error
            item.last_attempt_at = self._now()
            if status is SyncStatus.FAILED:
                item.attempts += 1
            s.add(item)
            s.commit()
            s.refresh(item)
            return item

    def requeue(self, item_id: int) -> bool:
        """Move a failed row back to pending, keeping attempts and error.

        Returns:
            True if the row was failed and is now pending.
        """
        stmt = (
            update(SyncQueueItem)
            .where(SyncQueueItem.id == item_id)
            .where(SyncQueueItem.status == SyncStatus.FAILED.value)
            .values(status=SyncStatus.PENDING.value)
        )
        with Session(self.engine) as s:
            result = s.execute(stmt)
            s.commit()
            return result.rowcount > 0

    def reset_failed(self) -> int:
        """Reset every failed row to pending with attempts=0 and no error."""
        stmt = (
            update(SyncQueueItem)
            .where(SyncQueueItem.status == SyncStatus.FAILED.value)
            .values(status=SyncStatus.PENDING.value, attempts=0, error=None)
        )
        with Session(self.engine) as s:
            result = s.execute(stmt)
            s.commit()
            return result.rowcount

    def recover_interrupted(self) -> int:
        """Mark rows stranded in-progress by a crash as failed.

        They then follow the normal failed-row path and are picked up again
        by retry_failed().
        """
        stmt = (
            update(SyncQueueItem)
            .where(SyncQueueItem.status == SyncStatus.IN_PROGRESS.value)
            .values(
                status=SyncStatus.FAILED.value,
                error=INTERRUPTED_ERROR,
                attempts=SyncQueueItem.attempts + 1,
                last_attempt_at=self._now(),
            )
        )
        with Session(self.engine) as s:
            result = s.execute(stmt)
            s.commit()
            return result.rowcount

    def cleanup_sync_queue(self) -> int:
        """Delete completed rows. Returns the number removed."""
        stmt = delete(SyncQueueItem).where(
            SyncQueueItem.status == SyncStatus.COMPLETED.value
        )
        with Session(self.engine) as s:
            result = s.execute(stmt)
            s.commit()
            return result.rowcount
