"""Full-refresh coordinator for the Hue Dat integration."""

from __future__ import annotations

import logging
import time

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import BridgeAuthError, BridgeConnectionError, BridgeError, HueBridgeClient
from .codecs.hue_codec import decode_groups, decode_scenes
from .const import (
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MANUAL_REFRESH_DEBOUNCE,
    RTYPE_ROOM,
    RTYPE_ZONE,
)
from .domain.state import GroupResource
from .domain.store import StateStore
from .throttle import MonotonicCallable

_LOGGER = logging.getLogger(__name__)


class HueDatCoordinator(DataUpdateCoordinator[list[GroupResource]]):
    """Poll rooms, zones and scenes and reconcile them into the store.

    Every resource list is fetched before anything is applied, so a failed
    refresh leaves the cached state exactly as it was.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: ConfigEntry | None,
        client: HueBridgeClient,
        store: StateStore,
        *,
        monotonic: MonotonicCallable = time.monotonic,
    ) -> None:
        """Initialise the coordinator for one bridge."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=DEFAULT_POLL_INTERVAL,
        )
        self.client = client
        self.store = store
        self._monotonic = monotonic
        self._last_refresh: float | None = None
        self._refreshing = False

    @property
    def last_refresh(self) -> float | None:
        """Return the monotonic time of the last successful refresh."""

        return self._last_refresh

    async def _async_update_data(self) -> list[GroupResource]:
        """Fetch every resource list and reconcile the store."""
        self._refreshing = True
        try:
            return await self._async_refresh_store()
        finally:
            self._refreshing = False

    async def _async_refresh_store(self) -> list[GroupResource]:
        try:
            grouped_lights = await self.client.fetch_grouped_lights()
            rooms = await self.client.fetch_rooms()
            zones = await self.client.fetch_zones()
            scenes = await self.client.fetch_scenes()
        except BridgeAuthError as err:
            raise ConfigEntryAuthFailed(
                "The bridge rejected the application key"
            ) from err
        except BridgeConnectionError as err:
            raise UpdateFailed(f"Bridge unreachable: {err}") from err
        except BridgeError as err:
            raise UpdateFailed(f"Bridge error: {err}") from err

        room_groups = decode_groups(rooms, grouped_lights, group_type=RTYPE_ROOM)
        zone_groups = decode_groups(zones, grouped_lights, group_type=RTYPE_ZONE)
        changes = await self.store.async_apply_full_refresh(
            room_groups, group_type=RTYPE_ROOM
        )
        changes += await self.store.async_apply_full_refresh(
            zone_groups, group_type=RTYPE_ZONE
        )
        await self.store.async_apply_scenes(decode_scenes(scenes, self.store.groups()))
        self._last_refresh = self._monotonic()
        _LOGGER.debug(
            "Refreshed %d room(s) and %d zone(s); %d group change(s)",
            len(room_groups),
            len(zone_groups),
            len(changes),
        )
        return self.store.groups()

    async def async_request_manual_refresh(self, *, force: bool = False) -> bool:
        """Refresh now unless a refresh ran recently or is already running.

        Returns True when a refresh was performed.
        """

        if self._refreshing:
            _LOGGER.debug("Manual refresh skipped; refresh already running")
            return False
        if not force and self._last_refresh is not None:
            elapsed = self._monotonic() - self._last_refresh
            if elapsed < MANUAL_REFRESH_DEBOUNCE:
                _LOGGER.debug(
                    "Manual refresh skipped; last refresh %.1fs ago", elapsed
                )
                return False
        await self.async_refresh()
        return self.last_update_success


__all__ = ["HueDatCoordinator"]
