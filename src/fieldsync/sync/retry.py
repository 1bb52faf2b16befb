"""
Exponential backoff and the engine's set of delayed retry tasks.

Each transiently failed item gets one asyncio task that sleeps for its
backoff delay, moves the item from failed back to pending, and then asks
for a full sync pass. The tasks are owned here so shutdown can cancel them
and callers can see how many retries are outstanding.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set

from fieldsync.sync.errors import SyncError

logger = logging.getLogger(__name__)


def backoff_delay_ms(attempts: int, initial_ms: int, max_ms: int) -> int:
    """initial_ms * 2**attempts, capped at max_ms.

    Args:
        attempts: Failures recorded on the item before the current one.
    """
    return min(initial_ms * (2 ** max(attempts, 0)), max_ms)


class RetryScheduler:
    def __init__(
        self,
        requeue: Callable[[int], bool],
        trigger: Callable[[], Awaitable[Any]],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            requeue: Moves a failed item back to pending; returns False when
                the item is no longer failed (already reset or removed).
            trigger: Coroutine function running a full sync pass.
            sleep: Awaitable delay, injectable for tests.
        """
        self._requeue = requeue
        self._trigger = trigger
        self._sleep = sleep
        self._tasks: Dict[int, asyncio.Task] = {}
        self._delayed: Set[asyncio.Task] = set()  # still sleeping, no pass started

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_scheduled(self, item_id: int) -> bool:
        return item_id in self._tasks

    def schedule(self, item_id: int, delay_ms: int) -> asyncio.Task:
        """Schedule a retry for one item, replacing any earlier one for it."""
        existing = self._tasks.pop(item_id, None)
        # A retry pass may reschedule its own item; never cancel the running task
        if existing is not None and existing is not asyncio.current_task():
            existing.cancel()
        task = asyncio.get_running_loop().create_task(self._run(item_id, delay_ms))
        self._tasks[item_id] = task
        self._delayed.add(task)
        task.add_done_callback(lambda t, item_id=item_id: self._forget(item_id, t))
        return task

    def _forget(self, item_id: int, task: asyncio.Task) -> None:
        self._delayed.discard(task)
        if self._tasks.get(item_id) is task:
            del self._tasks[item_id]

    async def _run(self, item_id: int, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        self._delayed.discard(asyncio.current_task())
        if not self._requeue(item_id):
            logger.debug("Retry for item %s skipped: no longer failed", item_id)
            return
        try:
            await self._trigger()
        except SyncError as exc:
            logger.info("Retry sync for item %s not run: %s", item_id, exc)
        except Exception:
            logger.exception("Retry sync for item %s failed", item_id)

    def cancel_delayed(self) -> int:
        """Cancel retries still waiting out their delay.

        A retry already running its sync pass is left to finish.

        Returns:
            How many were cancelled.
        """
        cancelled = 0
        for item_id, task in list(self._tasks.items()):
            if task in self._delayed:
                task.cancel()
                self._delayed.discard(task)
                del self._tasks[item_id]
                cancelled += 1
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every outstanding retry. Returns how many were cancelled."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        self._delayed.clear()
        return len(tasks)

    async def wait_all(self) -> None:
        """Wait for outstanding retries to run (test and drain helper)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
