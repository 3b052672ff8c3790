"""Home Assistant entry point for the Hue Dat integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.core import HomeAssistant, ServiceCall, callback
from homeassistant.exceptions import (
    ConfigEntryAuthFailed,
    ConfigEntryError,
    HomeAssistantError,
)
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.storage import Store

from .api import HueBridgeClient
from .backend.event_stream import StreamClient
from .backend.reconnect import ReconnectionSupervisor
from .backend.sanitize import mask_identifier
from .const import (
    CONF_APP_KEY,
    CONF_HOST,
    DOMAIN,
    SERVICE_RECONNECT_STREAM,
    SERVICE_REFRESH,
    SERVICE_TURN_OFF_ALL,
    STORAGE_VERSION,
    signal_group_update,
    signal_stream_status,
    storage_key,
)
from .coordinator import HueDatCoordinator
from .domain.events import StreamState
from .domain.session import ConnectionSession
from .domain.store import StateStore, StoreChange
from .gateway import CommandGateway
from .optimistic import OptimisticUpdateCoordinator
from .runtime import EntryRuntime, iter_runtimes

_LOGGER = logging.getLogger(__name__)

PLATFORMS = ["light", "scene"]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up the Hue Dat integration for a config entry."""
    try:
        session = ConnectionSession(entry.data[CONF_HOST], entry.data[CONF_APP_KEY])
    except ValueError as err:
        raise ConfigEntryError(str(err)) from err

    client = HueBridgeClient(async_get_clientsession(hass, verify_ssl=False), session)
    store = StateStore()
    storage: Store[dict[str, Any]] = Store(
        hass, STORAGE_VERSION, storage_key(entry.entry_id)
    )
    hydrated = await store.async_hydrate(await storage.async_load())

    gateway = CommandGateway(client)
    stream = StreamClient(client, name=f"{DOMAIN}-{entry.entry_id}")
    coordinator = HueDatCoordinator(hass, entry, client, store)

    runtime: EntryRuntime | None = None

    def _session_active() -> bool:
        return runtime is not None and runtime.session_active()

    runtime = EntryRuntime(
        config_entry=entry,
        session=session,
        client=client,
        store=store,
        gateway=gateway,
        stream=stream,
        supervisor=ReconnectionSupervisor(stream, session_active=_session_active),
        optimistic=OptimisticUpdateCoordinator(store, gateway),
        coordinator=coordinator,
        storage=storage,
    )

    if hydrated:
        # Cached groups let entities come up while the bridge is unreachable.
        await coordinator.async_refresh()
        if isinstance(coordinator.last_exception, ConfigEntryAuthFailed):
            raise coordinator.last_exception
        if not coordinator.last_update_success:
            _LOGGER.warning(
                "Bridge %s unreachable; using %d cached group(s)",
                mask_identifier(session.host),
                hydrated,
            )
    else:
        await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = runtime

    @callback
    def _on_store_change(change: StoreChange) -> None:
        async_dispatcher_send(
            hass, signal_group_update(entry.entry_id), change.resource_id
        )
        runtime.schedule_save()

    @callback
    def _on_overlay_change(group_id: str) -> None:
        async_dispatcher_send(hass, signal_group_update(entry.entry_id), group_id)

    @callback
    def _on_stream_state(state: StreamState) -> None:
        async_dispatcher_send(hass, signal_stream_status(entry.entry_id), state)

    @callback
    def _ensure_stream() -> None:
        """Restart the stream after a refresh if nothing else will."""
        if runtime.closing or stream.is_running() or runtime.supervisor.pending:
            return
        if not stream.is_connected:
            _LOGGER.debug("Stream not connected after refresh; starting it")
            stream.start()

    runtime.unsubscribers.extend(
        (
            store.async_add_listener(_on_store_change),
            runtime.optimistic.add_listener(_on_overlay_change),
            stream.add_state_listener(_on_stream_state),
            stream.add_batch_listener(store.async_apply_stream_events),
            coordinator.async_add_listener(_ensure_stream),
        )
    )
    runtime.schedule_save()
    runtime.supervisor.async_start()
    stream.start()

    async def _async_handle_hass_stop(_event: Any) -> None:
        """Stop background activity gracefully when Home Assistant stops."""

        await runtime.async_shutdown()

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_handle_hass_stop)
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    async_register_services(hass)

    _LOGGER.info(
        "Hue Dat setup complete for bridge %s (%d group(s))",
        mask_identifier(session.host),
        len(store.groups()),
    )
    return True


@callback
def async_register_services(hass: HomeAssistant) -> None:
    """Register integration services once."""

    if hass.services.has_service(DOMAIN, SERVICE_RECONNECT_STREAM):
        return

    async def _async_reconnect_stream(call: ServiceCall) -> None:
        """Force every bridge stream to reconnect now."""

        for runtime in iter_runtimes(hass):
            await runtime.supervisor.async_force_reconnect()

    async def _async_refresh(call: ServiceCall) -> None:
        """Refresh every bridge immediately."""

        for runtime in iter_runtimes(hass):
            await runtime.coordinator.async_request_manual_refresh(force=True)

    async def _async_turn_off_all(call: ServiceCall) -> None:
        """Switch off every room and zone on every bridge."""

        failures: dict[str, Exception] = {}
        for runtime in iter_runtimes(hass):
            failures.update(await runtime.async_turn_off_all())
        if failures:
            raise HomeAssistantError(
                f"Could not turn off {len(failures)} group(s): "
                + ", ".join(sorted(failures))
            )

    hass.services.async_register(
        DOMAIN, SERVICE_RECONNECT_STREAM, _async_reconnect_stream
    )
    hass.services.async_register(DOMAIN, SERVICE_REFRESH, _async_refresh)
    hass.services.async_register(DOMAIN, SERVICE_TURN_OFF_ALL, _async_turn_off_all)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    domain_data = hass.data.get(DOMAIN)
    runtime = domain_data.get(entry.entry_id) if domain_data else None
    if runtime is None:
        return True

    ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not ok:
        return False

    await runtime.async_shutdown()
    domain_data.pop(entry.entry_id, None)

    if not domain_data:
        hass.data.pop(DOMAIN, None)
        hass.services.async_remove(DOMAIN, SERVICE_RECONNECT_STREAM)
        hass.services.async_remove(DOMAIN, SERVICE_REFRESH)
        hass.services.async_remove(DOMAIN, SERVICE_TURN_OFF_ALL)
    return True
