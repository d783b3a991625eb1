"""Sensor platform for Pi-hole Controls integration."""

from __future__ import annotations

from typing import Any

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfTime
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .base_entity import PiHoleEntity
from .const import DOMAIN
from .coordinator import PiHoleBlockingCoordinator
from .models import BlockingStatus, format_remaining


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Pi-hole sensors from a config entry."""
    coordinator: PiHoleBlockingCoordinator = hass.data[DOMAIN][entry.entry_id]["coordinator"]
    async_add_entities(
        [
            PiHoleBlockingStatusSensor(coordinator, entry),
            PiHoleDisableRemainingSensor(coordinator, entry),
        ]
    )


class PiHoleBlockingStatusSensor(PiHoleEntity, SensorEntity):
    """Blocking status as last observed, including unknown."""

    _attr_name = "Blocking status"
    _attr_icon = "mdi:shield-half-full"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [status.value for status in BlockingStatus]

    def __init__(self, coordinator: PiHoleBlockingCoordinator, entry: ConfigEntry) -> None:
        """Initialize the status sensor."""
        super().__init__(coordinator, entry, "blocking_status")

    @property
    def native_value(self) -> str:
        """Return the blocking status."""
        return self.coordinator.status.value


class PiHoleDisableRemainingSensor(PiHoleEntity, SensorEntity):
    """Seconds left before a timed disable ends."""

    _attr_name = "Disable time remaining"
    _attr_icon = "mdi:timer-sand"
    _attr_device_class = SensorDeviceClass.DURATION
    _attr_native_unit_of_measurement = UnitOfTime.SECONDS

    def __init__(self, coordinator: PiHoleBlockingCoordinator, entry: ConfigEntry) -> None:
        """Initialize the countdown sensor."""
        super().__init__(coordinator, entry, "disable_remaining")

    @property
    def native_value(self) -> int | None:
        """Return the remaining seconds, None when no countdown runs."""
        return self.coordinator.remaining_seconds

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the countdown formatted as m:ss."""
        attrs = super().extra_state_attributes
        attrs["remaining_display"] = format_remaining(self.coordinator.remaining_seconds)
        return attrs
