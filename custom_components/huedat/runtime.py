"""Runtime container helpers for Hue Dat config entries."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .api import HueBridgeClient
from .backend.event_stream import StreamClient
from .backend.reconnect import ReconnectionSupervisor
from .const import DOMAIN, STORAGE_SAVE_DELAY
from .coordinator import HueDatCoordinator
from .domain.commands import CommandKind
from .domain.session import ConnectionSession
from .domain.store import StateStore
from .gateway import CommandGateway
from .optimistic import ChangeRejectedError, OptimisticUpdateCoordinator

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EntryRuntime:
    """Runtime container for a configured bridge entry."""

    config_entry: ConfigEntry
    session: ConnectionSession | None
    client: HueBridgeClient
    store: StateStore
    gateway: CommandGateway
    stream: StreamClient
    supervisor: ReconnectionSupervisor
    optimistic: OptimisticUpdateCoordinator
    coordinator: HueDatCoordinator
    storage: Store[dict[str, Any]]
    unsubscribers: list[Callable[[], None]] = field(default_factory=list)
    closing: bool = False

    def session_active(self) -> bool:
        """Return True while the entry still owns a bridge session."""

        return self.session is not None and not self.closing

    def schedule_save(self) -> None:
        """Persist the resource cache after a short delay."""

        self.storage.async_delay_save(self.store.as_persisted, STORAGE_SAVE_DELAY)

    async def async_activate_scene(self, scene_id: str) -> None:
        """Recall ``scene_id`` and refresh when the stream cannot confirm it."""

        await self.client.activate_scene(scene_id)
        if not self.stream.is_connected:
            await self.coordinator.async_request_manual_refresh(force=True)

    async def async_turn_off_all(self) -> dict[str, Exception]:
        """Switch every room and zone off and return failures by group id.

        Each group goes through the optimistic coordinator, so its overlay is
        shown at once and rolled back if that group's command fails. One
        failure never stops the remaining groups.
        """

        targets = [group for group in self.store.groups() if group.grouped_light_id]
        failures: dict[str, Exception] = {}
        futures: dict[str, asyncio.Future] = {}
        for group in targets:
            try:
                futures[group.id] = self.optimistic.request_change(
                    group.id, CommandKind.POWER, False
                )
            except ChangeRejectedError as err:
                failures[group.id] = err
        results = await asyncio.gather(*futures.values(), return_exceptions=True)
        for group_id, result in zip(futures, results):
            if isinstance(result, Exception):
                failures[group_id] = result
        if failures:
            _LOGGER.warning(
                "Turn off all: %d of %d group(s) failed",
                len(failures),
                len(targets),
            )
        return failures

    async def async_shutdown(self) -> None:
        """Stop background work; in-flight commands are left to finish."""

        if self.closing:
            return
        self.closing = True
        while self.unsubscribers:
            unsub = self.unsubscribers.pop()
            try:
                unsub()
            except Exception:  # pragma: no cover
                _LOGGER.exception("Failed to remove runtime listener")
        await self.supervisor.async_stop()
        await self.stream.stop()
        await self.optimistic.async_shutdown()
        await self.coordinator.async_shutdown()
        await self.storage.async_save(self.store.as_persisted())
        self.session = None


def require_runtime(hass: HomeAssistant, entry_id: str) -> EntryRuntime:
    """Return the runtime container stored for ``entry_id``."""

    domain_data = hass.data.get(DOMAIN)
    if not isinstance(domain_data, dict):
        raise LookupError("Hue Dat runtime data is unavailable")  # noqa: TRY004
    runtime = domain_data.get(entry_id)
    if isinstance(runtime, EntryRuntime):
        return runtime
    raise LookupError("Hue Dat runtime data is unavailable")


def iter_runtimes(hass: HomeAssistant) -> list[EntryRuntime]:
    """Return every loaded runtime."""

    domain_data = hass.data.get(DOMAIN)
    if not isinstance(domain_data, dict):
        return []
    return [value for value in domain_data.values() if isinstance(value, EntryRuntime)]


__all__ = ["EntryRuntime", "iter_runtimes", "require_runtime"]
