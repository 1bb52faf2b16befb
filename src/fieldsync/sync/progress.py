"""Fan-out of sync progress events to any number of listeners."""
import logging
from typing import Callable, Set

from fieldsync.models.sync import SyncProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SyncProgress], None]


class ProgressReporter:
    """
    Set of progress listeners. Delivery order across listeners is unspecified.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the event and the sync pass carries on.
    """

    def __init__(self):
        self._callbacks: Set[ProgressCallback] = set()

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a listener. Returns a function removing exactly that listener."""
        self._callbacks.add(callback)

        def unsubscribe() -> None:
            self._callbacks.discard(callback)

        return unsubscribe

    def report(self, progress: SyncProgress) -> None:
        for callback in list(self._callbacks):
            try:
                callback(progress)
            except Exception:
                logger.exception("Progress callback %r failed", callback)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)
