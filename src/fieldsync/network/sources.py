"""
Connectivity sources: where raw connectivity signals come from.

A source pushes raw events to subscribers and can be asked for the current
state on demand. NetworkMonitor normalizes whatever a source emits.

  StaticConnectivitySource: fixed state, flipped by hand (tests, desktop use)
  HttpProbeSource:          polls a URL with httpx and emits on change
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional, Protocol

import httpx

from fieldsync.models.sync import NetworkState

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[Any], None]


class ConnectivitySource(Protocol):
    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register for change events. Returns an unsubscribe function."""
        ...

    async def fetch(self) -> Any:
        """Return the current raw connectivity state."""
        ...


class StaticConnectivitySource:
    """Connectivity held in memory; set_state() emits to subscribers."""

    def __init__(self, state: Optional[NetworkState] = None):
        self._state = state or NetworkState(
            is_connected=True, is_internet_reachable=True, type="other"
        )
        self._callbacks: List[ConnectivityCallback] = []

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        # Platform listeners report the current state on registration
        callback(self._state)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def fetch(self) -> NetworkState:
        return self._state

    def set_state(self, state: NetworkState) -> None:
        self._state = state
        for callback in list(self._callbacks):
            callback(state)

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)


class HttpProbeSource:
    """
    Treats "an HTTP response below 500 arrived from probe_url" as connected.

    Polling starts with the first subscriber and stops with the last one.
    Events are only emitted when the connected flag changes.
    """

    def __init__(
        self,
        probe_url: str,
        interval_seconds: float = 15.0,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.probe_url = probe_url
        self.interval_seconds = interval_seconds
        self.timeout = timeout
        self.client = client
        self._callbacks: List[ConnectivityCallback] = []
        self._task: Optional[asyncio.Task] = None
        self._last: Optional[NetworkState] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)
        return self.client

    async def fetch(self) -> NetworkState:
        client = await self._get_client()
        try:
            response = await client.head(self.probe_url)
        except httpx.HTTPError as e:
            logger.debug("Connectivity probe %s failed: %s", self.probe_url, e)
            return NetworkState(is_connected=False, is_internet_reachable=False, type="none")
        reachable = response.status_code < 500
        return NetworkState(
            is_connected=reachable, is_internet_reachable=reachable, type="other"
        )

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._poll())

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks and self._task is not None:
                self._task.cancel()
                self._task = None

        return unsubscribe

    async def _poll(self) -> None:
        while True:
            state = await self.fetch()
            if self._last is None or state.is_connected != self._last.is_connected:
                self._last = state
                for callback in list(self._callbacks):
                    callback(state)
            await asyncio.sleep(self.interval_seconds)

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.client:
            await self.client.aclose()
            self.client = None
