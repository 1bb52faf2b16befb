"""Tests for NetworkMonitor normalization and reconnect triggering."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from fieldsync.models.sync import NetworkState
from fieldsync.network.monitor import NetworkMonitor, normalize_state
from fieldsync.network.sources import StaticConnectivitySource

ONLINE = NetworkState(is_connected=True, is_internet_reachable=True, type="wifi")
OFFLINE = NetworkState(is_connected=False, is_internet_reachable=False, type="none")


class TestNormalizeState:
    def test_netinfo_style_mapping(self):
        state = normalize_state({"isConnected": True, "isInternetReachable": None, "type": "cellular"})
        assert state == NetworkState(is_connected=True, is_internet_reachable=None, type="cellular")

    def test_snake_case_mapping(self):
        state = normalize_state({"is_connected": False, "is_internet_reachable": False, "type": "none"})
        assert state == NetworkState(is_connected=False, is_internet_reachable=False, type="none")

    def test_null_connected_means_disconnected(self):
        assert normalize_state({"isConnected": None}).is_connected is False

    def test_unknown_transport_is_other(self):
        assert normalize_state({"isConnected": True, "type": "satellite"}).type == "other"

    def test_network_state_passes_through(self):
        assert normalize_state(ONLINE) is ONLINE

    def test_unsupported_event(self):
        with pytest.raises(TypeError):
            normalize_state("online")


class TestNetworkMonitor:
    def test_initial_state_is_disconnected(self):
        monitor = NetworkMonitor(StaticConnectivitySource(ONLINE))
        assert monitor.get_state().is_connected is False

    @pytest.mark.asyncio
    async def test_start_receives_current_state(self):
        monitor = NetworkMonitor(StaticConnectivitySource(ONLINE))
        monitor.start()
        assert monitor.state == ONLINE
        monitor.stop()

    @pytest.mark.asyncio
    async def test_restore_triggers_callback(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()

        source.set_state(ONLINE)
        await monitor.wait_restores()

        on_restored.assert_awaited_once()
        monitor.stop()

    @pytest.mark.asyncio
    async def test_no_trigger_while_staying_connected(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()

        source.set_state(ONLINE)
        source.set_state(NetworkState(is_connected=True, is_internet_reachable=True, type="cellular"))
        await monitor.wait_restores()

        assert on_restored.await_count == 1
        monitor.stop()

    @pytest.mark.asyncio
    async def test_no_trigger_on_disconnect(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()

        source.set_state(OFFLINE)
        await monitor.wait_restores()

        on_restored.assert_not_awaited()
        monitor.stop()

    @pytest.mark.asyncio
    async def test_restore_failure_does_not_reach_toggler(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock(side_effect=RuntimeError("Sync already in progress"))
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()

        source.set_state(ONLINE)  # must not raise
        await monitor.wait_restores()

        on_restored.assert_awaited_once()
        assert monitor.state.is_connected is True
        monitor.stop()

    @pytest.mark.asyncio
    async def test_double_start_replaces_subscription(self):
        source = StaticConnectivitySource(ONLINE)
        monitor = NetworkMonitor(source)
        monitor.start()
        monitor.start()
        assert source.subscriber_count == 1
        monitor.stop()
        assert source.subscriber_count == 0

    def test_stop_when_not_started_is_safe(self):
        monitor = NetworkMonitor(StaticConnectivitySource(ONLINE))
        monitor.stop()
        assert monitor.is_monitoring is False

    @pytest.mark.asyncio
    async def test_events_ignored_after_stop(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()
        monitor.stop()

        source.set_state(ONLINE)
        await asyncio.sleep(0)

        on_restored.assert_not_awaited()
        assert monitor.state.is_connected is False

    @pytest.mark.asyncio
    async def test_check_updates_state_without_trigger(self):
        source = StaticConnectivitySource(ONLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)

        state = await monitor.check()

        assert state == ONLINE
        assert monitor.get_state() == ONLINE
        assert monitor.pending_restores == 0
        on_restored.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_cancels_restore_not_yet_started(self):
        source = StaticConnectivitySource(OFFLINE)
        on_restored = AsyncMock()
        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()

        source.set_state(ONLINE)
        monitor.stop()  # before the restore task gets to run
        await monitor.wait_restores()

        on_restored.assert_not_awaited()
        assert monitor.pending_restores == 0

    @pytest.mark.asyncio
    async def test_stop_lets_running_restore_finish(self):
        source = StaticConnectivitySource(OFFLINE)
        gate = asyncio.Event()
        finished = []

        async def on_restored():
            await gate.wait()
            finished.append(True)

        monitor = NetworkMonitor(source, on_restored=on_restored)
        monitor.start()
        source.set_state(ONLINE)
        await asyncio.sleep(0)  # restore pass is now under way

        monitor.stop()
        gate.set()
        await monitor.wait_restores()

        assert finished == [True]
