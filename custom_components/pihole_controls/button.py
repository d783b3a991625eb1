"""Button platform for Pi-hole Controls integration."""

from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .base_entity import PiHoleEntity
from .const import DOMAIN
from .coordinator import PiHoleBlockingCoordinator

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Pi-hole buttons from a config entry."""
    coordinator: PiHoleBlockingCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    async_add_entities([PiHoleRefreshButton(coordinator, entry)])


class PiHoleRefreshButton(PiHoleEntity, ButtonEntity):
    """Button that re-reads the blocking status."""

    _attr_name = "Refresh"
    _attr_icon = "mdi:refresh"

    def __init__(self, coordinator: PiHoleBlockingCoordinator, entry: ConfigEntry) -> None:
        """Initialize the refresh button."""
        super().__init__(coordinator, entry, "refresh")

    async def async_press(self) -> None:
        """Refresh the blocking status."""
        _LOGGER.debug("Manual refresh of %s", self._entry.title)
        await self.coordinator.async_refresh()
        if not self.coordinator.last_update_success:
            raise HomeAssistantError(f"Failed to refresh Pi-hole status: {self.coordinator.last_error}")
