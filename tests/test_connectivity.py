"""Tests for the Pi-hole connectivity monitor."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from custom_components.pihole_controls.connectivity import PiHoleConnectivityMonitor, async_probe_tcp

OPEN_CONNECTION_PATH = "custom_components.pihole_controls.connectivity.asyncio.open_connection"


class TestReachabilityTransitions:
    """Test debounced refresh on reconnection."""

    @pytest.mark.asyncio
    async def test_restored_triggers_once(self, mock_hass, timers):
        """Test that unreachable to reachable schedules exactly one refresh."""
        on_restored = AsyncMock()
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored)

        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        (restore,) = timers.active_later()
        assert restore.delay == 0.5
        on_restored.assert_not_awaited()

        await restore.async_fire()

        on_restored.assert_awaited_once()
        assert monitor.is_reachable is True

    @pytest.mark.asyncio
    async def test_first_observation_does_not_trigger(self, mock_hass, timers):
        """Test that the initial reachable report is not a restore."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock())

        monitor.async_update_reachability(True)
        monitor.async_update_reachability(True)

        assert timers.later == []

    @pytest.mark.asyncio
    async def test_repeated_reachable_does_not_retrigger(self, mock_hass, timers):
        """Test that staying reachable schedules nothing new."""
        on_restored = AsyncMock()
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored)

        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        await timers.later[0].async_fire()
        monitor.async_update_reachability(True)

        assert len(timers.later) == 1
        on_restored.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_flapping_cancels_pending_refresh(self, mock_hass, timers):
        """Test that dropping out before the debounce elapses cancels the refresh."""
        on_restored = AsyncMock()
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored)

        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        monitor.async_update_reachability(False)

        assert timers.active_later() == []

        monitor.async_update_reachability(True)
        (restore,) = timers.active_later()
        await restore.async_fire()
        on_restored.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_when_debounce_fires(self, mock_hass, timers):
        """Test that nothing runs if the Pi-hole is gone again when the timer fires."""
        on_restored = AsyncMock()
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored)
        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        restore = timers.later[0]
        monitor._reachable = False

        await restore.async_fire()

        on_restored.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_error_is_logged_not_raised(self, mock_hass, timers):
        """Test that a failing refresh does not break the monitor."""
        on_restored = AsyncMock(side_effect=RuntimeError("refresh failed"))
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored)

        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        await timers.later[0].async_fire()

        on_restored.assert_awaited_once()
        assert monitor.is_reachable is True


class TestStartStop:
    """Test monitor lifecycle."""

    def test_stop_without_start(self, mock_hass, timers):
        """Test that stop is safe before start and when repeated."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock())

        monitor.async_stop()
        monitor.async_stop()

        assert monitor.is_running is False

    def test_start_without_reachability_check(self, mock_hass, timers):
        """Test that a monitor fed externally tracks no interval."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock())

        monitor.async_start()

        assert monitor.is_running is True
        assert timers.intervals == []
        monitor.async_stop()

    def test_start_tracks_interval_once(self, mock_hass, timers):
        """Test that starting twice keeps a single probe interval."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock(), probe=AsyncMock(), probe_interval=10)

        monitor.async_start()
        monitor.async_start()

        (interval,) = timers.intervals
        assert interval.delay == timedelta(seconds=10)

        monitor.async_stop()
        monitor.async_stop()
        interval.cancel.assert_called_once()
        assert monitor.is_running is False

    def test_stop_cancels_pending_refresh(self, mock_hass, timers):
        """Test that stopping drops a refresh waiting on the debounce."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock())
        monitor.async_start()

        monitor.async_update_reachability(False)
        monitor.async_update_reachability(True)
        monitor.async_stop()

        assert timers.active_later() == []

    @pytest.mark.asyncio
    async def test_check_interval_detects_restore(self, mock_hass, timers):
        """Test that each probe run feeds reachability."""
        on_restored = AsyncMock()
        probe = AsyncMock(side_effect=[False, True])
        monitor = PiHoleConnectivityMonitor(mock_hass, on_restored, probe=probe)
        monitor.async_start()
        (interval,) = timers.intervals

        await interval.async_fire()
        assert monitor.is_reachable is False
        await interval.async_fire()
        assert monitor.is_reachable is True

        await timers.later[0].async_fire()
        on_restored.assert_awaited_once()
        monitor.async_stop()

    @pytest.mark.asyncio
    async def test_failing_check_counts_as_unreachable(self, mock_hass, timers):
        """Test that a raising probe marks the Pi-hole unreachable."""
        probe = AsyncMock(side_effect=OSError("no route"))
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock(), probe=probe)
        monitor.async_start()

        await timers.intervals[0].async_fire()

        assert monitor.is_reachable is False
        monitor.async_stop()

    @pytest.mark.asyncio
    async def test_check_result_after_stop_is_ignored(self, mock_hass, timers):
        """Test that a probe finishing after stop records nothing."""
        monitor = PiHoleConnectivityMonitor(mock_hass, AsyncMock(), probe=AsyncMock(return_value=True))
        monitor.async_start()
        interval = timers.intervals[0]
        monitor.async_stop()

        await interval.async_fire()

        assert monitor.is_reachable is None


class TestProbeTcp:
    """Test the TCP reachability probe."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Test that an accepted connection is reachable and closed again."""
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        with patch(OPEN_CONNECTION_PATH, new_callable=AsyncMock, return_value=(MagicMock(), writer)) as mock_open:
            assert await async_probe_tcp("http://pi.hole") is True

        mock_open.assert_awaited_once_with("pi.hole", 80)
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("host_url", "port"),
        [("https://pi.hole", 443), ("http://192.168.1.2:8080", 8080)],
    )
    async def test_port_selection(self, host_url, port):
        """Test the port derived from the base URL."""
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        with patch(OPEN_CONNECTION_PATH, new_callable=AsyncMock, return_value=(MagicMock(), writer)) as mock_open:
            await async_probe_tcp(host_url)

        assert mock_open.await_args.args[1] == port

    @pytest.mark.asyncio
    async def test_refused(self):
        """Test that a refused connection is unreachable."""
        with patch(OPEN_CONNECTION_PATH, new_callable=AsyncMock, side_effect=ConnectionRefusedError()):
            assert await async_probe_tcp("http://pi.hole") is False

    @pytest.mark.asyncio
    async def test_no_hostname(self):
        """Test that an unusable URL is unreachable without connecting."""
        with patch(OPEN_CONNECTION_PATH, new_callable=AsyncMock) as mock_open:
            assert await async_probe_tcp("") is False
        mock_open.assert_not_awaited()
