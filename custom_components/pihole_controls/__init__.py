"""The Pi-hole Controls integration."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import functools
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.aiohttp_client import async_get_clientsession
import voluptuous as vol

from .api import ConnectionProfile, PiHoleApi
from .connectivity import PiHoleConnectivityMonitor, async_probe_tcp
from .const import (
    ATTR_DURATION,
    CONF_ALLOW_SELF_SIGNED,
    CONF_API_TOKEN,
    CONF_DEBUG_API,
    CONF_DEBUG_COORDINATOR,
    CONF_DISABLE_MINUTES,
    CONF_HOST,
    CONF_REFRESH_INTERVAL,
    DEFAULT_ALLOW_SELF_SIGNED,
    DEFAULT_DEBUG_API,
    DEFAULT_DEBUG_COORDINATOR,
    DEFAULT_DISABLE_MINUTES,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    MAX_DISABLE_MINUTES,
    SERVICE_DISABLE,
    SERVICE_ENABLE,
    SERVICE_REFRESH,
    SERVICE_TOGGLE,
)
from .coordinator import PiHoleBlockingCoordinator
from .session_cache import PiHoleSessionCache

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.BUTTON,
    Platform.SENSOR,
    Platform.SWITCH,
]

SESSION_CACHE_KEY = f"{DOMAIN}_session_cache"

SERVICE_DISABLE_SCHEMA = vol.Schema(
    {
        vol.Optional(ATTR_DURATION): vol.All(vol.Coerce(int), vol.Range(min=1, max=MAX_DISABLE_MINUTES * 60)),
    }
)


def _apply_debug_logging(entry: ConfigEntry) -> None:
    """Apply debug logging settings from config entry options.

    Changes take effect immediately without requiring a restart.
    """
    debug_api = entry.options.get(CONF_DEBUG_API, DEFAULT_DEBUG_API)
    debug_coord = entry.options.get(CONF_DEBUG_COORDINATOR, DEFAULT_DEBUG_COORDINATOR)

    api_logger = logging.getLogger(f"custom_components.{DOMAIN}.api")
    api_logger.setLevel(logging.DEBUG if debug_api else logging.INFO)

    coord_logger = logging.getLogger(f"custom_components.{DOMAIN}.coordinator")
    coord_logger.setLevel(logging.DEBUG if debug_coord else logging.INFO)

    _LOGGER.info(
        "Debug logging: API=%s, Coordinator=%s",
        "DEBUG" if debug_api else "INFO",
        "DEBUG" if debug_coord else "INFO",
    )


def _get_session_cache(hass: HomeAssistant) -> PiHoleSessionCache:
    """Get or create the session cache shared by every entry of this hass instance."""
    return hass.data.setdefault(SESSION_CACHE_KEY, PiHoleSessionCache())


def _make_client_factory(hass: HomeAssistant, entry: ConfigEntry) -> Callable[[], PiHoleApi]:
    """Return a factory building a client from the entry's current settings."""
    session = async_get_clientsession(hass)
    session_cache = _get_session_cache(hass)

    def client_factory() -> PiHoleApi:
        profile = ConnectionProfile.from_settings(
            entry.data.get(CONF_HOST),
            entry.data.get(CONF_API_TOKEN),
            entry.data.get(CONF_ALLOW_SELF_SIGNED, DEFAULT_ALLOW_SELF_SIGNED),
        )
        return PiHoleApi(profile, session=session, session_cache=session_cache)

    return client_factory


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Pi-hole Controls from a config entry."""
    hass.data.setdefault(DOMAIN, {})
    _apply_debug_logging(entry)

    coordinator = PiHoleBlockingCoordinator(
        hass,
        _make_client_factory(hass, entry),
        config_entry=entry,
        default_disable_minutes=entry.options.get(CONF_DISABLE_MINUTES, DEFAULT_DISABLE_MINUTES),
        refresh_interval=entry.options.get(CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL),
    )

    # Initial status read; later reads follow update_interval once entities subscribe
    await coordinator.async_config_entry_first_refresh()

    monitor = PiHoleConnectivityMonitor(
        hass,
        coordinator.async_refresh,
        probe=functools.partial(async_probe_tcp, entry.data[CONF_HOST]),
    )

    hass.data[DOMAIN][entry.entry_id] = {
        "coordinator": coordinator,
        "monitor": monitor,
    }

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    monitor.async_start()

    _async_register_services(hass)

    # Register update listener for options changes
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    return True


def _iter_coordinators(hass: HomeAssistant) -> list[PiHoleBlockingCoordinator]:
    return [
        entry_data["coordinator"]
        for entry_data in hass.data.get(DOMAIN, {}).values()
        if isinstance(entry_data, dict) and "coordinator" in entry_data and not entry_data.get("unloading")
    ]


async def _async_refresh_status(coordinator: PiHoleBlockingCoordinator) -> bool:
    """Refresh one Pi-hole and report whether the read succeeded."""
    await coordinator.async_refresh()
    return coordinator.last_update_success


async def _async_run_on_all(
    hass: HomeAssistant,
    service_name: str,
    intent: Callable[[PiHoleBlockingCoordinator], Awaitable[bool]],
) -> None:
    """Run an intent on every loaded Pi-hole, raising if any of them failed."""
    _LOGGER.info("%s service called", service_name)
    failures: list[str] = []
    for coordinator in _iter_coordinators(hass):
        if not await intent(coordinator) and coordinator.last_error:
            failures.append(coordinator.last_error.splitlines()[0])
    if failures:
        raise HomeAssistantError(f"Pi-hole {service_name} failed: {'; '.join(failures)}")


def _async_register_services(hass: HomeAssistant) -> None:
    """Register services (only once per domain)."""
    if hass.services.has_service(DOMAIN, SERVICE_REFRESH):
        return

    async def handle_refresh(call: ServiceCall) -> None:
        await _async_run_on_all(hass, SERVICE_REFRESH, _async_refresh_status)

    async def handle_enable(call: ServiceCall) -> None:
        await _async_run_on_all(hass, SERVICE_ENABLE, lambda coordinator: coordinator.async_enable())

    async def handle_disable(call: ServiceCall) -> None:
        """Disable for the given duration, or each Pi-hole's default duration."""
        duration = call.data.get(ATTR_DURATION)
        await _async_run_on_all(
            hass,
            SERVICE_DISABLE,
            lambda coordinator: coordinator.async_disable(
                duration if duration is not None else coordinator.default_disable_seconds
            ),
        )

    async def handle_toggle(call: ServiceCall) -> None:
        await _async_run_on_all(hass, SERVICE_TOGGLE, lambda coordinator: coordinator.async_toggle())

    hass.services.async_register(DOMAIN, SERVICE_REFRESH, handle_refresh, schema=cv.empty_config_schema(DOMAIN))
    hass.services.async_register(DOMAIN, SERVICE_ENABLE, handle_enable, schema=cv.empty_config_schema(DOMAIN))
    hass.services.async_register(DOMAIN, SERVICE_DISABLE, handle_disable, schema=SERVICE_DISABLE_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_TOGGLE, handle_toggle, schema=cv.empty_config_schema(DOMAIN))


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle options update.

    Debug logging is applied instantly. Other changes are applied via a
    full reload.
    """
    _apply_debug_logging(entry)
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if entry.entry_id in hass.data.get(DOMAIN, {}):
        entry_data = hass.data[DOMAIN][entry.entry_id]

        # Mark entry as unloading so services won't access partially-unloaded data
        entry_data["unloading"] = True

        monitor: PiHoleConnectivityMonitor | None = entry_data.get("monitor")
        if monitor:
            monitor.async_stop()
        coordinator: PiHoleBlockingCoordinator | None = entry_data.get("coordinator")
        if coordinator:
            await coordinator.async_shutdown()

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id, None)

        # Unregister services and drop cached sessions when the last entry is unloaded
        if not hass.data[DOMAIN]:
            for service_name in (SERVICE_REFRESH, SERVICE_ENABLE, SERVICE_DISABLE, SERVICE_TOGGLE):
                hass.services.async_remove(DOMAIN, service_name)
            session_cache: PiHoleSessionCache | None = hass.data.pop(SESSION_CACHE_KEY, None)
            if session_cache is not None:
                await session_cache.async_clear()
            _LOGGER.debug("Unregistered all Pi-hole Controls services (last entry removed)")

    return unload_ok
