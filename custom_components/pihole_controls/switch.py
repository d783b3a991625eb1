"""Switch platform for Pi-hole Controls integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .base_entity import PiHoleEntity
from .const import DOMAIN
from .coordinator import PiHoleBlockingCoordinator
from .models import BlockingStatus

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the blocking switch from a config entry."""
    coordinator: PiHoleBlockingCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    async_add_entities([PiHoleBlockingSwitch(coordinator, entry)])


class PiHoleBlockingSwitch(PiHoleEntity, SwitchEntity):
    """Switch that turns ad blocking on and off."""

    _attr_name = "Blocking"

    def __init__(self, coordinator: PiHoleBlockingCoordinator, entry: ConfigEntry) -> None:
        """Initialize the blocking switch."""
        super().__init__(coordinator, entry, "blocking")

    @property
    def is_on(self) -> bool | None:
        """Return True if blocking is enabled, None while unknown."""
        status = self.coordinator.status
        if status is BlockingStatus.UNKNOWN:
            return None
        return status is BlockingStatus.ENABLED

    @property
    def icon(self) -> str:
        """Return an icon reflecting the blocking state."""
        if self.coordinator.status is BlockingStatus.DISABLED:
            return "mdi:shield-off"
        return "mdi:shield-check"

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Enable blocking."""
        _LOGGER.debug("Enabling blocking on %s", self._entry.title)
        if not await self.coordinator.async_enable():
            self._raise_if_failed("enable blocking")

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Disable blocking for the configured default duration."""
        _LOGGER.debug("Disabling blocking on %s", self._entry.title)
        if not await self.coordinator.async_disable(self.coordinator.default_disable_seconds):
            self._raise_if_failed("disable blocking")

    def _raise_if_failed(self, action: str) -> None:
        """Surface a failed intent; an intent ignored while busy is not an error."""
        if self.coordinator.last_error:
            raise HomeAssistantError(f"Failed to {action}: {self.coordinator.last_error}")
