"""Entity base shared across Hue Dat platforms."""

from __future__ import annotations

from typing import Any

from homeassistant.core import callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import signal_group_update, signal_stream_status
from .coordinator import HueDatCoordinator
from .runtime import EntryRuntime


class HueDatEntity(CoordinatorEntity[HueDatCoordinator]):
    """Entity bound to one cached resource and refreshed by dispatcher signals."""

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(self, runtime: EntryRuntime, resource_id: str) -> None:
        """Initialise the entity for ``resource_id``."""

        super().__init__(runtime.coordinator)
        self._runtime = runtime
        self._resource_id = resource_id
        self._attr_unique_id = resource_id

    @property
    def available(self) -> bool:
        """Return True when the bridge was reachable recently."""

        return super().available or self._runtime.stream.is_connected

    async def async_added_to_hass(self) -> None:
        """Subscribe to resource and stream updates when added."""

        await super().async_added_to_hass()
        entry_id = self._runtime.config_entry.entry_id
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass, signal_group_update(entry_id), self._handle_resource_update
            )
        )
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass, signal_stream_status(entry_id), self._handle_stream_status
            )
        )

    @callback
    def _handle_resource_update(self, resource_id: str) -> None:
        """Write state when the update targets this entity's resource."""

        if resource_id == self._resource_id:
            self.async_write_ha_state()

    @callback
    def _handle_stream_status(self, _state: Any) -> None:
        """Re-evaluate availability when the stream connects or drops."""

        self.async_write_ha_state()
