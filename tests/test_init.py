from __future__ import annotations

from homeassistant.components.light import ATTR_BRIGHTNESS
from homeassistant.config_entries import ConfigEntryState
from homeassistant.const import ATTR_ENTITY_ID, STATE_OFF, STATE_ON, STATE_UNAVAILABLE
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util.color import value_to_brightness
import pytest
from pytest_homeassistant_custom_component.common import MockConfigEntry

from conftest import (
    FakeBridgeClient,
    FlakyError,
    event_line,
    group_payload,
    settle,
)

from custom_components.huedat.api import BridgeAuthError, BridgeConnectionError
from custom_components.huedat.codecs.hue_codec import decode_groups
from custom_components.huedat.const import (
    DOMAIN,
    SERVICE_RECONNECT_STREAM,
    SERVICE_REFRESH,
    SERVICE_TURN_OFF_ALL,
    STORAGE_VERSION,
    storage_key,
)
from custom_components.huedat.runtime import require_runtime

LIVING_ROOM = "light.living_room"
DOWNSTAIRS = "light.downstairs"


async def test_setup_creates_group_lights_and_scenes(
    hass: HomeAssistant, init_integration: MockConfigEntry
) -> None:
    assert init_integration.state is ConfigEntryState.LOADED

    living = hass.states.get(LIVING_ROOM)
    downstairs = hass.states.get(DOWNSTAIRS)
    assert living.state == STATE_ON
    assert living.attributes[ATTR_BRIGHTNESS] == value_to_brightness((1, 100), 40)
    assert living.attributes["group_type"] == "room"
    assert downstairs.state == STATE_OFF
    assert hass.states.get("scene.living_room_relax") is not None
    assert hass.states.get("scene.downstairs_bright") is not None
    assert hass.services.has_service(DOMAIN, SERVICE_REFRESH)
    assert hass.services.has_service(DOMAIN, SERVICE_RECONNECT_STREAM)
    assert hass.services.has_service(DOMAIN, SERVICE_TURN_OFF_ALL)
    assert require_runtime(hass, init_integration.entry_id).stream.is_connected


async def test_stream_events_update_entities(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    stream = mock_bridge.streams[-1]
    stream.feed(
        event_line({"id": "gl-room", "type": "grouped_light", "on": {"on": False}})
    )
    await settle(hass)

    assert hass.states.get(LIVING_ROOM).state == STATE_OFF

    stream.feed(event_line(group_payload("room-2", "Office", "gl-office"), kind="add"))
    await settle(hass)

    assert hass.states.get("light.office") is not None


async def test_turn_off_is_optimistic_then_confirmed(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    await hass.services.async_call(
        "light", "turn_off", {ATTR_ENTITY_ID: LIVING_ROOM}, blocking=True
    )

    assert mock_bridge.commands == [("power", "gl-room", False)]
    assert hass.states.get(LIVING_ROOM).state == STATE_OFF
    runtime = require_runtime(hass, init_integration.entry_id)
    assert runtime.store.group("room-1").snapshot.on is False


async def test_turn_on_with_brightness_powers_then_dims(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    await hass.services.async_call(
        "light",
        "turn_on",
        {ATTR_ENTITY_ID: DOWNSTAIRS, ATTR_BRIGHTNESS: 255},
        blocking=True,
    )

    assert mock_bridge.commands == [
        ("power", "gl-zone", True),
        ("brightness", "gl-zone", 100.0),
    ]
    state = hass.states.get(DOWNSTAIRS)
    assert state.state == STATE_ON
    assert state.attributes[ATTR_BRIGHTNESS] == 255


async def test_failed_command_rolls_back_and_raises(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    mock_bridge.command_error = FlakyError("bridge busy")

    with pytest.raises(HomeAssistantError):
        await hass.services.async_call(
            "light", "turn_off", {ATTR_ENTITY_ID: LIVING_ROOM}, blocking=True
        )
    await settle(hass)

    assert hass.states.get(LIVING_ROOM).state == STATE_ON


async def test_scene_activation_skips_refresh_while_streaming(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    fetches = mock_bridge.fetch_count

    await hass.services.async_call(
        "scene", "turn_on", {ATTR_ENTITY_ID: "scene.living_room_relax"}, blocking=True
    )

    assert mock_bridge.commands == [("scene", "scene-1", None)]
    assert mock_bridge.fetch_count == fetches


async def test_integration_services(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    fetches = mock_bridge.fetch_count

    await hass.services.async_call(DOMAIN, SERVICE_REFRESH, blocking=True)
    await hass.services.async_call(DOMAIN, SERVICE_RECONNECT_STREAM, blocking=True)
    await settle(hass)

    assert mock_bridge.fetch_count == fetches + 1
    assert len(mock_bridge.streams) == 2
    assert require_runtime(hass, init_integration.entry_id).stream.is_connected


async def test_unload_stops_background_work(
    hass: HomeAssistant, init_integration: MockConfigEntry
) -> None:
    runtime = require_runtime(hass, init_integration.entry_id)

    assert await hass.config_entries.async_unload(init_integration.entry_id)
    await hass.async_block_till_done()

    assert init_integration.state is ConfigEntryState.NOT_LOADED
    assert runtime.stream.is_running() is False
    assert runtime.session_active() is False
    assert DOMAIN not in hass.data
    assert not hass.services.has_service(DOMAIN, SERVICE_REFRESH)
    assert not hass.services.has_service(DOMAIN, SERVICE_TURN_OFF_ALL)


async def test_auth_failure_starts_reauth(
    hass: HomeAssistant,
    enable_custom_integrations: None,
    mock_bridge: FakeBridgeClient,
    config_entry: MockConfigEntry,
) -> None:
    mock_bridge.fetch_error = BridgeAuthError("key revoked", status=403)
    config_entry.add_to_hass(hass)

    await hass.config_entries.async_setup(config_entry.entry_id)
    await hass.async_block_till_done()

    assert config_entry.state is ConfigEntryState.SETUP_ERROR
    flows = hass.config_entries.flow.async_progress()
    assert [flow["context"]["source"] for flow in flows] == ["reauth"]


async def test_unreachable_bridge_without_cache_retries(
    hass: HomeAssistant,
    enable_custom_integrations: None,
    mock_bridge: FakeBridgeClient,
    config_entry: MockConfigEntry,
) -> None:
    mock_bridge.fetch_error = BridgeConnectionError("refused")
    config_entry.add_to_hass(hass)

    await hass.config_entries.async_setup(config_entry.entry_id)
    await hass.async_block_till_done()

    assert config_entry.state is ConfigEntryState.SETUP_RETRY


async def test_cached_groups_survive_unreachable_bridge(
    hass: HomeAssistant,
    hass_storage: dict,
    enable_custom_integrations: None,
    mock_bridge: FakeBridgeClient,
    config_entry: MockConfigEntry,
) -> None:
    """Hydrated groups let the entry load before the bridge answers."""

    groups = decode_groups(
        mock_bridge.rooms, mock_bridge.grouped_lights, group_type="room"
    )
    hass_storage[storage_key(config_entry.entry_id)] = {
        "version": STORAGE_VERSION,
        "minor_version": 1,
        "key": storage_key(config_entry.entry_id),
        "data": {"groups": [group.as_dict() for group in groups], "scenes": []},
    }
    mock_bridge.fetch_error = BridgeConnectionError("refused")
    config_entry.add_to_hass(hass)

    assert await hass.config_entries.async_setup(config_entry.entry_id)
    await settle(hass)

    assert config_entry.state is ConfigEntryState.LOADED
    runtime = require_runtime(hass, config_entry.entry_id)
    assert runtime.store.group("room-1").snapshot.brightness == 40.0
    assert hass.states.get(LIVING_ROOM).state == STATE_UNAVAILABLE

    mock_bridge.fetch_error = None
    await hass.services.async_call(DOMAIN, SERVICE_REFRESH, blocking=True)
    await settle(hass)

    assert hass.states.get(LIVING_ROOM).state == STATE_ON
    assert hass.states.get(DOWNSTAIRS) is not None


async def test_turn_off_all_switches_every_group(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    await hass.services.async_call(DOMAIN, SERVICE_TURN_OFF_ALL, blocking=True)
    await settle(hass)

    assert sorted(mock_bridge.commands) == [
        ("power", "gl-room", False),
        ("power", "gl-zone", False),
    ]
    assert hass.states.get(LIVING_ROOM).state == STATE_OFF
    runtime = require_runtime(hass, init_integration.entry_id)
    assert runtime.store.group("room-1").snapshot.on is False


async def test_turn_off_all_continues_past_failed_groups(
    hass: HomeAssistant, init_integration: MockConfigEntry, mock_bridge: FakeBridgeClient
) -> None:
    """A failing room is rolled back and reported; the zone still switches."""

    send_power = mock_bridge.set_grouped_light_on

    async def _room_fails(grouped_light_id: str, on: bool) -> None:
        if grouped_light_id == "gl-room":
            raise FlakyError("bridge busy")
        await send_power(grouped_light_id, on)

    mock_bridge.set_grouped_light_on = _room_fails

    with pytest.raises(HomeAssistantError, match="room-1"):
        await hass.services.async_call(DOMAIN, SERVICE_TURN_OFF_ALL, blocking=True)
    await settle(hass)

    assert mock_bridge.commands == [("power", "gl-zone", False)]
    assert hass.states.get(LIVING_ROOM).state == STATE_ON
    assert hass.states.get(DOWNSTAIRS).state == STATE_OFF
