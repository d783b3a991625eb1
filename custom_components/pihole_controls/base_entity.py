"""Base entity for Pi-hole Controls integration."""

from __future__ import annotations

from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import CONF_HOST, DOMAIN
from .coordinator import PiHoleBlockingCoordinator


class PiHoleEntity(CoordinatorEntity[PiHoleBlockingCoordinator]):
    """Base class for Pi-hole Controls entities."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: PiHoleBlockingCoordinator,
        entry: ConfigEntry,
        key: str,
    ) -> None:
        """Initialize the entity."""
        super().__init__(coordinator)
        self._entry = entry
        self._attr_unique_id = f"{entry.entry_id}_{key}"

    @property
    def available(self) -> bool:
        """Return True; failures are reported through last_error instead."""
        return True

    @property
    def device_info(self) -> DeviceInfo:
        """Return device info for the Pi-hole."""
        return DeviceInfo(
            identifiers={(DOMAIN, self._entry.entry_id)},
            name=self._entry.title,
            manufacturer="Pi-hole",
            model="DNS sinkhole",
            configuration_url=f"{self._entry.data.get(CONF_HOST, '')}/admin",
        )

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the shared loading and error attributes."""
        return {
            "is_loading": self.coordinator.is_loading,
            "last_error": self.coordinator.last_error,
        }

    @callback
    def _handle_coordinator_update(self) -> None:
        """Handle updated data from the coordinator."""
        self.async_write_ha_state()
