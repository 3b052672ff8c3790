"""Light entities for Hue Dat rooms and zones."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.light import ATTR_BRIGHTNESS, ColorMode, LightEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.util.color import brightness_to_value, value_to_brightness

from .api import BridgeAuthError, BridgeError
from .const import DOMAIN, signal_group_update
from .domain.commands import CommandKind
from .domain.state import GroupResource
from .entity import HueDatEntity
from .optimistic import ChangeRejectedError
from .runtime import EntryRuntime, require_runtime

_LOGGER = logging.getLogger(__name__)

BRIGHTNESS_SCALE = (1, 100)


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up one light per room and zone, adding new groups as they appear."""

    runtime = require_runtime(hass, entry.entry_id)
    known: set[str] = set()

    @callback
    def _async_add_new(_resource_id: str | None = None) -> None:
        new = [
            HueDatGroupLight(runtime, group.id)
            for group in runtime.store.groups()
            if group.id not in known
        ]
        if not new:
            return
        known.update(light.group_id for light in new)
        _LOGGER.debug("Adding %d Hue Dat group light(s)", len(new))
        async_add_entities(new)

    _async_add_new()
    entry.async_on_unload(
        async_dispatcher_connect(
            hass, signal_group_update(entry.entry_id), _async_add_new
        )
    )


class HueDatGroupLight(HueDatEntity, LightEntity):
    """Aggregate light of a room or zone."""

    _attr_color_mode = ColorMode.BRIGHTNESS
    _attr_supported_color_modes = {ColorMode.BRIGHTNESS}
    _attr_name = None

    def __init__(self, runtime: EntryRuntime, group_id: str) -> None:
        """Initialise the light for ``group_id``."""

        super().__init__(runtime, group_id)
        group = runtime.store.group(group_id)
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, group_id)},
            name=group.name if group else None,
            manufacturer="Signify",
            model=group.group_type.title() if group else None,
        )

    @property
    def group_id(self) -> str:
        """Return the room or zone id."""

        return self._resource_id

    @property
    def _group(self) -> GroupResource | None:
        return self._runtime.optimistic.effective_group(self._resource_id)

    @property
    def available(self) -> bool:
        """Return True while the group exists and exposes a grouped light."""

        group = self._runtime.store.group(self._resource_id)
        if group is None or not group.grouped_light_id:
            return False
        return super().available

    @property
    def is_on(self) -> bool | None:
        """Return True when the grouped light is on."""

        group = self._group
        if group is None or group.snapshot is None:
            return None
        return group.snapshot.on

    @property
    def brightness(self) -> int | None:
        """Return brightness on Home Assistant's 0..255 scale."""

        group = self._group
        if group is None or group.snapshot is None:
            return None
        return value_to_brightness(BRIGHTNESS_SCALE, group.snapshot.brightness)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Expose group metadata and the optimistic change state."""

        group = self._runtime.store.group(self._resource_id)
        if group is None:
            return {}
        return {
            "group_type": group.group_type,
            "archetype": group.archetype,
            "pending_change": self._runtime.optimistic.is_busy(self._resource_id),
        }

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Switch the group on, optionally at a brightness."""

        brightness = kwargs.get(ATTR_BRIGHTNESS)
        if not self.is_on or brightness is None:
            await self._async_request(CommandKind.POWER, True)
        if brightness is not None:
            await self._async_request(
                CommandKind.BRIGHTNESS, brightness_to_value(BRIGHTNESS_SCALE, brightness)
            )

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Switch the group off."""

        await self._async_request(CommandKind.POWER, False)

    async def _async_request(self, kind: CommandKind, value: Any) -> None:
        try:
            await self._runtime.optimistic.request_change(
                self._resource_id, kind, value
            )
        except ChangeRejectedError as err:
            raise HomeAssistantError(str(err)) from err
        except BridgeAuthError as err:
            self._runtime.config_entry.async_start_reauth(self.hass)
            raise HomeAssistantError("The bridge rejected the application key") from err
        except BridgeError as err:
            raise HomeAssistantError(f"Bridge command failed: {err}") from err
