"""
In-memory sync types: network state, progress events, pass results.

Plain dataclasses, no DB dependencies. Queue rows referenced from a
SyncResult are detached copies so a result stays unchanged after return.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from fieldsync.models.queue import SyncQueueItem


@dataclass(frozen=True)
class NetworkState:
    is_connected: bool = False
    is_internet_reachable: Optional[bool] = None  # None = not yet known
    type: str = "unknown"  # wifi / cellular / ethernet / other / none / unknown


class SyncPhase(str, Enum):
    IDLE = "idle"
    CHECKING_NETWORK = "checking-network"
    FETCHING_QUEUE = "fetching-queue"
    SYNCING = "syncing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class CurrentItem:
    table_name: str
    record_id: str
    operation: str


@dataclass(frozen=True)
class SyncProgress:
    phase: SyncPhase
    total_items: int = 0
    processed_items: int = 0
    success_count: int = 0
    failed_count: int = 0
    percentage: int = 0
    message: str = ""
    current_item: Optional[CurrentItem] = None


@dataclass(frozen=True)
class SyncItemError:
    item: SyncQueueItem
    error: str


@dataclass(frozen=True)
class SyncResult:
    """Summary of one sync pass. success is True iff no item failed."""

    success: bool
    total_items: int = 0
    success_count: int = 0
    failed_count: int = 0
    duration_ms: int = 0
    errors: Tuple[SyncItemError, ...] = ()

    @classmethod
    def empty(cls, duration_ms: int = 0) -> "SyncResult":
        return cls(success=True, duration_ms=duration_ms)


@dataclass(frozen=True)
class SyncStatistics:
    total_pending: int
    total_failed: int
    total_completed: int
    # table_name -> {"pending": n, "failed": n}
    by_table: Dict[str, Dict[str, int]] = field(default_factory=dict)
