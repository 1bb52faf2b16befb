"""
NetworkMonitor: normalizes connectivity events and reacts to reconnects.

Raw events may be a NetworkState, a mapping with NetInfo-style keys
(isConnected / isInternetReachable / type) or snake_case keys. Each event
replaces the cached state; a disconnected → connected transition schedules
the on_restored coroutine as a background task. Failures of that task are
logged and never reach whoever toggled connectivity.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Set

from fieldsync.models.sync import NetworkState
from fieldsync.network.sources import ConnectivitySource

logger = logging.getLogger(__name__)

TRANSPORT_TYPES = {"wifi", "cellular", "ethernet", "bluetooth", "vpn", "wimax", "other", "none", "unknown"}


def normalize_state(raw: Any) -> NetworkState:
    """Build a NetworkState from a raw connectivity event."""
    if isinstance(raw, NetworkState):
        return raw
    if not isinstance(raw, Mapping):
        raise TypeError(f"Unsupported connectivity event: {type(raw).__name__}")

    def pick(*keys):
        for key in keys:
            if key in raw:
                return raw[key]
        return None

    connected = pick("isConnected", "is_connected")
    reachable = pick("isInternetReachable", "is_internet_reachable")
    transport = str(pick("type") or "unknown").lower()
    return NetworkState(
        is_connected=bool(connected),  # null → not connected
        is_internet_reachable=None if reachable is None else bool(reachable),
        type=transport if transport in TRANSPORT_TYPES else "other",
    )


class NetworkMonitor:
    """Owns the subscription to a ConnectivitySource and the last known state."""

    def __init__(
        self,
        source: ConnectivitySource,
        on_restored: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        """
        Args:
            source: Connectivity source to subscribe to.
            on_restored: Coroutine function run when connectivity comes back.
        """
        self.source = source
        self.on_restored = on_restored
        self._state = NetworkState()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._restore_tasks: Set[asyncio.Task] = set()
        self._queued_restores: Set[asyncio.Task] = set()  # spawned, pass not yet started

    @property
    def state(self) -> NetworkState:
        return self._state

    def get_state(self) -> NetworkState:
        """Last known state; never performs I/O."""
        return self._state

    @property
    def is_monitoring(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        """Subscribe to the source. A second call replaces the subscription."""
        if self._unsubscribe is not None:
            logger.debug("Network monitor already subscribed, replacing subscription")
            self._unsubscribe()
            self._unsubscribe = None
        self._unsubscribe = self.source.subscribe(self.handle_event)
        logger.info("Network monitoring started")

    def stop(self) -> None:
        """Unsubscribe and cancel restore triggers whose pass has not started.

        A restore pass already under way is left to finish.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.info("Network monitoring stopped")
        for task in list(self._queued_restores):
            task.cancel()
        self._queued_restores.clear()

    async def check(self) -> NetworkState:
        """Ask the source for current connectivity and cache the answer.

        Unlike an event, a check never triggers on_restored.
        """
        self._state = normalize_state(await self.source.fetch())
        return self._state

    def handle_event(self, raw: Any) -> None:
        was_connected = self._state.is_connected
        self._state = normalize_state(raw)
        logger.info(
            "Network state changed: connected=%s reachable=%s type=%s",
            self._state.is_connected,
            self._state.is_internet_reachable,
            self._state.type,
        )

        if not was_connected and self._state.is_connected and self.on_restored:
            logger.info("Connection restored, triggering sync")
            self._spawn_restore()

    def _spawn_restore(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Connection restored outside an event loop; sync not triggered")
            return
        task = loop.create_task(self._run_restore())
        self._restore_tasks.add(task)
        self._queued_restores.add(task)
        task.add_done_callback(self._restore_tasks.discard)
        task.add_done_callback(self._queued_restores.discard)

    async def _run_restore(self) -> None:
        self._queued_restores.discard(asyncio.current_task())
        try:
            await self.on_restored()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Connection restore sync failed: %s", exc)

    @property
    def pending_restores(self) -> int:
        return len(self._restore_tasks)

    async def wait_restores(self) -> None:
        """Wait for outstanding restore-triggered passes to finish."""
        if self._restore_tasks:
            await asyncio.gather(*self._restore_tasks, return_exceptions=True)
