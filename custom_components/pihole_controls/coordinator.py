"""Blocking state coordinator for Pi-hole Controls.

Owns the locally published view of the device (status, loading flag, last
error and disable countdown). All state lives on the event loop, so every
mutation happens on one logical owner; network calls run as awaited
coroutines and only touch state once they resume.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
import contextlib
from datetime import datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_call_later, async_track_time_interval
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import PiHoleApi, PiHoleApiError
from .const import (
    COUNTDOWN_TICK,
    DEFAULT_DISABLE_MINUTES,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    FOLLOW_UP_REFRESH_DELAY,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
)
from .models import BlockingStatus, DisableDirective
from .retry import async_call_with_retry

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

ClientFactory = Callable[[], PiHoleApi]


class PiHoleBlockingCoordinator(DataUpdateCoordinator[BlockingStatus]):
    """Synchronize the local view of blocking with the Pi-hole.

    Intents (refresh, enable, disable, toggle) are serialized by an
    in-flight guard: while one runs, new intents are ignored. Scheduled
    refreshes and the disable countdown go through the same guard before
    doing network I/O.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        client_factory: ClientFactory,
        *,
        config_entry: ConfigEntry | None = None,
        default_disable_minutes: int = DEFAULT_DISABLE_MINUTES,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        follow_up_delay: float = FOLLOW_UP_REFRESH_DELAY,
        countdown_tick: float = COUNTDOWN_TICK,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        """Initialize the coordinator.

        Args:
            hass: Home Assistant instance.
            client_factory: Builds an API client from the current settings.
                Called once per attempt so settings changes apply right away;
                raises PiHoleInvalidConfigurationError when unconfigured.
            config_entry: The entry this coordinator belongs to.
            default_disable_minutes: Duration used by toggle (0 = indefinite).
            refresh_interval: Seconds between scheduled refreshes.
            follow_up_delay: Seconds before the reconciling refresh that
                follows a successful write.
            countdown_tick: Seconds per countdown step.
            max_attempts: Attempts per intent, including the first.
            retry_base_delay: Backoff delay after the first failure.
        """
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=timedelta(seconds=refresh_interval),
        )
        self._client_factory = client_factory
        self._default_disable_seconds = DisableDirective.from_minutes(default_disable_minutes).duration_seconds
        self._follow_up_delay = follow_up_delay
        self._countdown_tick = timedelta(seconds=countdown_tick)
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay

        self.is_loading = False
        self.last_error: str | None = None
        self.remaining_seconds: int | None = None

        self._idle = asyncio.Event()
        self._idle.set()
        self._unsub_follow_up: CALLBACK_TYPE | None = None
        self._unsub_countdown: CALLBACK_TYPE | None = None
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def status(self) -> BlockingStatus:
        """Return the last known blocking status."""
        return self.data if self.data is not None else BlockingStatus.UNKNOWN

    @property
    def default_disable_seconds(self) -> int | None:
        """Return the duration toggle disables for, None for indefinite."""
        return self._default_disable_seconds

    def _create_task(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = self.hass.async_create_task(coro, f"{DOMAIN} {name}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # In-flight guard

    @callback
    def _begin(self, intent: str) -> bool:
        if self.is_loading:
            _LOGGER.debug("Ignoring %s, another operation is in flight", intent)
            return False
        self.is_loading = True
        self._idle.clear()
        self.last_error = None
        self.async_update_listeners()
        return True

    @callback
    def _end(self) -> None:
        self.is_loading = False
        self._idle.set()
        self.async_update_listeners()

    async def _async_call(self, operation: Callable[[PiHoleApi], Awaitable[_T]]) -> _T:
        async def _attempt() -> _T:
            return await operation(self._client_factory())

        return await async_call_with_retry(_attempt, self._max_attempts, self._retry_base_delay)

    async def _async_write(self, intent: str, operation: Callable[[PiHoleApi], Awaitable[Any]]) -> bool:
        """Run a write with retry, converting failures to last_error.

        Prior state is left untouched on failure.
        """
        try:
            await self._async_call(operation)
        except PiHoleApiError as err:
            _LOGGER.warning("Pi-hole %s failed: %s", intent, str(err).splitlines()[0])
            self.last_error = str(err)
            return False
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected error during Pi-hole %s", intent)
            self.last_error = f"Unexpected error: {err}"
            return False
        return True

    # Intents

    async def _async_update_data(self) -> BlockingStatus:
        """Fetch the blocking status from the device.

        Skipped while another intent is in flight; the current status is
        kept in that case.
        """
        if not self._begin("refresh"):
            return self.status
        try:
            enabled = await self._async_call(lambda api: api.fetch_status())
        except PiHoleApiError as err:
            self.last_error = str(err)
            raise UpdateFailed(self.last_error.splitlines()[0]) from err
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected error during Pi-hole refresh")
            self.last_error = f"Unexpected error: {err}"
            raise UpdateFailed(self.last_error) from err
        finally:
            self._end()

        status = BlockingStatus.from_bool(bool(enabled))
        if status is BlockingStatus.ENABLED:
            self._stop_countdown()
        return status

    async def async_enable(self) -> bool:
        """Enable blocking. Returns True on success."""
        if not self._begin("enable"):
            return False
        try:
            ok = await self._async_write("enable", lambda api: api.enable_blocking())
        finally:
            self._end()
        if ok:
            self._stop_countdown()
            self.async_set_updated_data(BlockingStatus.ENABLED)
            self._schedule_follow_up_refresh()
        return ok

    async def async_disable(self, duration_seconds: int | None = None) -> bool:
        """Disable blocking, indefinitely or for duration_seconds.

        A timed disable starts a local countdown that re-enables blocking
        when it reaches zero.
        """
        if not self._begin("disable"):
            return False
        try:
            ok = await self._async_write("disable", lambda api: api.disable_blocking(duration_seconds))
        finally:
            self._end()
        if ok:
            self.async_set_updated_data(BlockingStatus.DISABLED)
            if duration_seconds is not None:
                self._start_countdown(duration_seconds)
            else:
                self.stop_countdown()
            self._schedule_follow_up_refresh()
        return ok

    async def async_toggle(self) -> bool:
        """Flip blocking based on the last known status.

        Unknown status only triggers a refresh; it never guesses a write.
        """
        if self.is_loading:
            _LOGGER.debug("Ignoring toggle, another operation is in flight")
            return False
        if self.status is BlockingStatus.ENABLED:
            return await self.async_disable(self._default_disable_seconds)
        if self.status is BlockingStatus.DISABLED:
            return await self.async_enable()
        await self.async_refresh()
        return self.last_update_success

    @callback
    def _schedule_follow_up_refresh(self) -> None:
        """Reconcile with the device shortly after a write."""
        self._cancel_follow_up()
        self._unsub_follow_up = async_call_later(self.hass, self._follow_up_delay, self._async_follow_up_refresh)

    async def _async_follow_up_refresh(self, _now: datetime) -> None:
        self._unsub_follow_up = None
        await self.async_refresh()

    @callback
    def _cancel_follow_up(self) -> None:
        if self._unsub_follow_up:
            self._unsub_follow_up()
            self._unsub_follow_up = None

    # Disable countdown

    @callback
    def _start_countdown(self, seconds: int) -> None:
        self._stop_countdown()
        self.remaining_seconds = max(0, seconds)
        if self.remaining_seconds == 0:
            self._finish_countdown()
            return
        self._unsub_countdown = async_track_time_interval(self.hass, self._countdown_step, self._countdown_tick)
        self.async_update_listeners()

    @callback
    def stop_countdown(self) -> None:
        """Cancel the disable countdown. Safe to call repeatedly."""
        self._stop_countdown()
        self.async_update_listeners()

    @callback
    def _stop_countdown(self) -> None:
        if self._unsub_countdown:
            self._unsub_countdown()
            self._unsub_countdown = None
        self.remaining_seconds = None

    @callback
    def _countdown_step(self, _now: datetime | None = None) -> None:
        """Advance the countdown by one tick."""
        remaining = self.remaining_seconds
        if remaining is None:
            self._stop_countdown()
            return
        if remaining > 1:
            self.remaining_seconds = remaining - 1
            self.async_update_listeners()
        else:
            self._finish_countdown()

    @callback
    def _finish_countdown(self) -> None:
        self._stop_countdown()
        self.async_update_listeners()
        re_enable = self.status is not BlockingStatus.ENABLED
        if re_enable:
            _LOGGER.debug("Disable countdown finished, re-enabling blocking")
        self._create_task(self._async_countdown_finished(re_enable), "countdown finished")

    async def _async_countdown_finished(self, re_enable: bool) -> None:
        """Re-enable (or re-read) once no other operation is in flight."""
        while self.is_loading:
            await self._idle.wait()
        if self.remaining_seconds is not None:
            _LOGGER.debug("A newer timed disable is running, leaving blocking off")
            return
        if re_enable:
            await self.async_enable()
        else:
            await self.async_refresh()

    async def async_shutdown(self) -> None:
        """Stop every timer and cancel pending work."""
        self._cancel_follow_up()
        self._stop_countdown()
        tasks = [task for task in self._background_tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await super().async_shutdown()
