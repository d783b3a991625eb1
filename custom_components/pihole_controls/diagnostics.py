"""Diagnostics support for Pi-hole Controls integration."""

from __future__ import annotations

from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import CONF_API_TOKEN, CONF_HOST, DOMAIN

TO_REDACT = {CONF_HOST, CONF_API_TOKEN, "sid", "csrf", "password"}


async def async_get_config_entry_diagnostics(hass: HomeAssistant, entry: ConfigEntry) -> dict[str, Any]:
    """Return diagnostics for a config entry."""
    entry_data = hass.data.get(DOMAIN, {}).get(entry.entry_id, {})
    coordinator = entry_data.get("coordinator")
    if not coordinator:
        return {"error": "Integration not fully loaded"}

    monitor = entry_data.get("monitor")
    session_cache = hass.data.get(f"{DOMAIN}_session_cache")

    return {
        "entry": {
            "entry_id": entry.entry_id,
            "version": entry.version,
            "domain": entry.domain,
            "data": async_redact_data(dict(entry.data), TO_REDACT),
            "options": async_redact_data(dict(entry.options), TO_REDACT),
        },
        "coordinator": {
            "status": coordinator.status.value,
            "is_loading": coordinator.is_loading,
            "last_error": coordinator.last_error,
            "remaining_seconds": coordinator.remaining_seconds,
            "last_update_success": coordinator.last_update_success,
            "update_interval": coordinator.update_interval.total_seconds() if coordinator.update_interval else None,
            "default_disable_seconds": coordinator.default_disable_seconds,
        },
        "connectivity": {
            "reachable": monitor.is_reachable if monitor else None,
            "running": monitor.is_running if monitor else False,
        },
        "session_cache_size": len(session_cache) if session_cache is not None else 0,
    }
