"""Diagnostics support for the Hue Dat integration."""

from __future__ import annotations

from collections.abc import Mapping
import logging
import platform
from typing import Any, Final

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import CONF_APP_KEY, CONF_HOST, DOMAIN
from .runtime import require_runtime

_LOGGER = logging.getLogger(__name__)

SENSITIVE_FIELDS: Final = {
    CONF_APP_KEY,
    CONF_HOST,
    "hue-application-key",
}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> Mapping[str, Any]:
    """Return a diagnostics payload for ``entry``."""

    runtime = require_runtime(hass, entry.entry_id)
    store = runtime.store
    groups = [
        {
            "id": group.id,
            "type": group.group_type,
            "name": group.name,
            "archetype": group.archetype,
            "children": len(group.children),
            "has_grouped_light": group.grouped_light_id is not None,
            "on": group.snapshot.on if group.snapshot else None,
            "brightness": group.snapshot.brightness if group.snapshot else None,
        }
        for group in store.groups()
    ]

    diagnostics: dict[str, Any] = {
        "integration": {"domain": DOMAIN},
        "home_assistant": {
            "version": str(getattr(hass, "version", "unknown")),
            "python_version": platform.python_version(),
        },
        "entry": dict(entry.data),
        "stream": {
            **runtime.stream.health.snapshot(),
            "running": runtime.stream.is_running(),
            "reconnect_attempts": runtime.supervisor.attempts,
            "reconnect_exhausted": runtime.supervisor.exhausted,
        },
        "refresh": {
            "last_update_success": runtime.coordinator.last_update_success,
        },
        "groups": groups,
        "scenes": len(store.scenes()),
        "pending_changes": [
            group["id"] for group in groups if runtime.optimistic.is_busy(group["id"])
        ],
    }

    _LOGGER.debug(
        "Diagnostics for %s: %d group(s), stream %s",
        entry.entry_id,
        len(groups),
        runtime.stream.state.phase.value,
    )
    return async_redact_data(diagnostics, SENSITIVE_FIELDS)
