"""Scene entities for Hue Dat."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.scene import Scene
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .api import BridgeError
from .const import signal_group_update
from .entity import HueDatEntity
from .runtime import EntryRuntime, require_runtime

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up scene entities, adding scenes created after startup."""

    runtime = require_runtime(hass, entry.entry_id)
    known: set[str] = set()

    @callback
    def _async_add_new(_resource_id: str | None = None) -> None:
        new = [
            HueDatScene(runtime, scene.id)
            for scene in runtime.store.scenes()
            if scene.id not in known
        ]
        if not new:
            return
        known.update(entity.scene_id for entity in new)
        _LOGGER.debug("Adding %d Hue Dat scene(s)", len(new))
        async_add_entities(new)

    _async_add_new()
    entry.async_on_unload(
        async_dispatcher_connect(
            hass, signal_group_update(entry.entry_id), _async_add_new
        )
    )


class HueDatScene(HueDatEntity, Scene):
    """Scene recalled through the bridge."""

    def __init__(self, runtime: EntryRuntime, scene_id: str) -> None:
        super().__init__(runtime, scene_id)
        scene = runtime.store.scene(scene_id)
        group = runtime.store.group(scene.group_id) if scene and scene.group_id else None
        if scene is None:
            self._attr_name = scene_id
        elif group is not None:
            self._attr_name = f"{group.name} {scene.name}"
        else:
            self._attr_name = scene.name

    @property
    def scene_id(self) -> str:
        return self._resource_id

    @property
    def available(self) -> bool:
        """Return True while the bridge still lists the scene."""

        if self._runtime.store.scene(self._resource_id) is None:
            return False
        return super().available

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        scene = self._runtime.store.scene(self._resource_id)
        if scene is None:
            return {}
        return {
            "group_id": scene.group_id,
            "group_type": scene.group_type,
            "active": scene.is_active,
        }

    async def async_activate(self, **kwargs: Any) -> None:
        """Recall the scene on the bridge."""

        try:
            await self._runtime.async_activate_scene(self._resource_id)
        except BridgeError as err:
            raise HomeAssistantError(f"Scene recall failed: {err}") from err
