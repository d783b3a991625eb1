"""Connectivity monitoring for Pi-hole Controls.

Watches whether the Pi-hole is reachable and triggers a refresh once it
comes back, after a short debounce so a flapping link does not cause a
burst of requests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import contextlib
from datetime import datetime, timedelta
import logging
from typing import Any
from urllib.parse import urlparse

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_call_later, async_track_time_interval

from .const import CONNECTIVITY_DEBOUNCE, CONNECTIVITY_PROBE_INTERVAL, CONNECTIVITY_PROBE_TIMEOUT

_LOGGER = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


async def async_probe_tcp(host_url: str, timeout: float = CONNECTIVITY_PROBE_TIMEOUT) -> bool:
    """Return True if a TCP connection to the Pi-hole's web port succeeds."""
    parsed = urlparse(host_url)
    if not parsed.hostname:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        async with asyncio.timeout(timeout):
            _reader, writer = await asyncio.open_connection(parsed.hostname, port)
    except (OSError, TimeoutError) as err:
        _LOGGER.debug("Probe of %s:%s failed: %s", parsed.hostname, port, err)
        return False
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True


class PiHoleConnectivityMonitor:
    """Trigger a callback when the Pi-hole becomes reachable again.

    Reachability is fed in through async_update_reachability, either by the
    built-in probe timer or by an external source. Only an unreachable to
    reachable transition schedules the callback; dropping back to
    unreachable before the debounce elapses cancels it.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        on_restored: Callable[[], Awaitable[Any]],
        *,
        debounce: float = CONNECTIVITY_DEBOUNCE,
        probe: Probe | None = None,
        probe_interval: float = CONNECTIVITY_PROBE_INTERVAL,
    ) -> None:
        """Initialize the monitor.

        Args:
            hass: Home Assistant instance.
            on_restored: Coroutine function run after connectivity returns.
            debounce: Seconds to wait before running on_restored.
            probe: Optional reachability check run every probe_interval.
            probe_interval: Seconds between probes.
        """
        self._hass = hass
        self._on_restored = on_restored
        self._debounce = debounce
        self._probe = probe
        self._probe_interval = timedelta(seconds=probe_interval)
        self._reachable: bool | None = None
        self._running = False
        self._unsub_restore: CALLBACK_TYPE | None = None
        self._unsub_probe: CALLBACK_TYPE | None = None

    @property
    def is_reachable(self) -> bool | None:
        """Return the last observed reachability, None before the first check."""
        return self._reachable

    @property
    def is_running(self) -> bool:
        """Return True while the monitor is started."""
        return self._running

    @callback
    def async_update_reachability(self, reachable: bool) -> None:
        """Record a reachability observation."""
        previous = self._reachable
        self._reachable = reachable

        if not reachable:
            if previous is not False:
                _LOGGER.debug("Pi-hole became unreachable")
            self._cancel_restore()
            return

        if previous is False:
            _LOGGER.debug("Pi-hole reachable again, refreshing in %.1f seconds", self._debounce)
            self._cancel_restore()
            self._unsub_restore = async_call_later(self._hass, self._debounce, self._async_restored)

    @callback
    def _cancel_restore(self) -> None:
        if self._unsub_restore:
            self._unsub_restore()
            self._unsub_restore = None

    async def _async_restored(self, _now: datetime) -> None:
        self._unsub_restore = None
        if not self._reachable:
            return
        try:
            await self._on_restored()
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.warning("Error refreshing after connectivity restored: %s", err)

    @callback
    def async_start(self) -> None:
        """Start monitoring. Safe to call repeatedly."""
        if self._running:
            return
        self._running = True
        if self._probe is not None:
            self._unsub_probe = async_track_time_interval(self._hass, self._async_run_probe, self._probe_interval)

    @callback
    def async_stop(self) -> None:
        """Stop monitoring and cancel a pending refresh. Safe to call repeatedly."""
        self._running = False
        self._cancel_restore()
        if self._unsub_probe:
            self._unsub_probe()
            self._unsub_probe = None

    async def _async_run_probe(self, _now: datetime) -> None:
        """Probe reachability once."""
        try:
            reachable = await self._probe()
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.debug("Connectivity probe error: %s", err)
            reachable = False
        if self._running:
            self.async_update_reachability(reachable)
