from __future__ import annotations

import asyncio

import pytest

from conftest import FakeBridgeClient, FlakyError, living_room_bridge

from custom_components.huedat.codecs.hue_codec import decode_groups
from custom_components.huedat.domain import CommandKind, StateStore
from custom_components.huedat.gateway import CommandGateway
from custom_components.huedat.optimistic import (
    ChangeRejectedError,
    OptimisticUpdateCoordinator,
)

DEBOUNCE = 0.05


async def _setup(
    client: FakeBridgeClient,
) -> tuple[StateStore, OptimisticUpdateCoordinator]:
    store = StateStore()
    await store.async_apply_full_refresh(
        decode_groups(client.rooms, client.grouped_lights, group_type="room")
        + decode_groups(client.zones, client.grouped_lights, group_type="zone")
    )
    gateway = CommandGateway(client, min_interval=0.0)
    return store, OptimisticUpdateCoordinator(store, gateway, debounce=DEBOUNCE)


@pytest.mark.asyncio
async def test_brightness_burst_is_coalesced(fake_client: FakeBridgeClient) -> None:
    """Five quick slider moves produce one command with the last value."""

    store, optimistic = await _setup(fake_client)
    futures = []
    for value in (10, 20, 30, 40, 55):
        futures.append(optimistic.request_change("room-1", CommandKind.BRIGHTNESS, value))
        assert optimistic.effective_group("room-1").snapshot.brightness == value
        await asyncio.sleep(DEBOUNCE / 5)

    assert all(future is futures[0] for future in futures)
    assert fake_client.commands == []

    await futures[0]

    assert fake_client.commands == [("brightness", "gl-room", 55.0)]
    assert store.group("room-1").snapshot.brightness == 55.0
    assert optimistic.overlay("room-1") == {}
    assert optimistic.is_busy("room-1") is False


@pytest.mark.asyncio
async def test_power_is_shown_immediately_then_promoted(
    fake_client: FakeBridgeClient,
) -> None:
    store, optimistic = await _setup(fake_client)
    updates: list[str] = []
    optimistic.add_listener(updates.append)

    future = optimistic.request_change("room-1", CommandKind.POWER, False)

    assert optimistic.effective_group("room-1").snapshot.on is False
    assert store.group("room-1").snapshot.on is True
    assert optimistic.is_busy("room-1")

    await future

    assert fake_client.commands == [("power", "gl-room", False)]
    assert store.group("room-1").snapshot.on is False
    assert optimistic.overlay("room-1") == {}
    assert updates == ["room-1", "room-1"]


@pytest.mark.asyncio
async def test_failed_command_rolls_back(fake_client: FakeBridgeClient) -> None:
    """The overlay disappears and the durable value shows again."""

    store, optimistic = await _setup(fake_client)
    fake_client.command_error = FlakyError("unreachable")

    future = optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 90)
    assert optimistic.effective_group("room-1").snapshot.brightness == 90.0

    with pytest.raises(FlakyError):
        await future

    assert optimistic.effective_group("room-1").snapshot.brightness == 40.0
    assert store.group("room-1").snapshot.brightness == 40.0
    assert optimistic.is_busy("room-1") is False


@pytest.mark.asyncio
async def test_conflicting_requests_are_rejected(fake_client: FakeBridgeClient) -> None:
    _, optimistic = await _setup(fake_client)

    dimming = optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 30)
    with pytest.raises(ChangeRejectedError):
        optimistic.request_change("room-1", CommandKind.POWER, False)
    await dimming

    power = optimistic.request_change("room-1", CommandKind.POWER, False)
    with pytest.raises(ChangeRejectedError):
        optimistic.request_change("room-1", CommandKind.POWER, True)
    with pytest.raises(ChangeRejectedError):
        optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 10)
    await power

    # Other groups are unaffected by a busy neighbour.
    zone = optimistic.request_change("zone-1", CommandKind.POWER, True)
    await zone
    assert [kind for kind, _, _ in fake_client.commands] == [
        "brightness",
        "power",
        "power",
    ]


@pytest.mark.asyncio
async def test_group_without_grouped_light_is_rejected(
    fake_client: FakeBridgeClient,
) -> None:
    _, optimistic = await _setup(fake_client)

    with pytest.raises(ChangeRejectedError):
        optimistic.request_change("room-missing", CommandKind.POWER, True)


@pytest.mark.asyncio
async def test_brightness_is_clamped(fake_client: FakeBridgeClient) -> None:
    _, optimistic = await _setup(fake_client)

    await optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 150)

    assert fake_client.commands == [("brightness", "gl-room", 100.0)]


@pytest.mark.asyncio
async def test_shutdown_abandons_debouncing_changes(
    fake_client: FakeBridgeClient,
) -> None:
    store, optimistic = await _setup(fake_client)

    future = optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 75)
    await optimistic.async_shutdown()

    with pytest.raises(ChangeRejectedError):
        await future
    await asyncio.sleep(DEBOUNCE * 2)

    assert fake_client.commands == []
    assert optimistic.overlay("room-1") == {}
    assert store.group("room-1").snapshot.brightness == 40.0


@pytest.mark.asyncio
async def test_shutdown_leaves_inflight_commands_running(
    fake_client: FakeBridgeClient,
) -> None:
    store, optimistic = await _setup(fake_client)

    future = optimistic.request_change("room-1", CommandKind.POWER, False)
    await optimistic.async_shutdown()
    await future

    assert fake_client.commands == [("power", "gl-room", False)]
    assert store.group("room-1").snapshot.on is False


class GatedClient(FakeBridgeClient):
    """Fake bridge whose commands block until their value's gate opens."""

    def __init__(self) -> None:
        super().__init__()
        self.gates: dict[object, asyncio.Event] = {}
        self.in_flight: list[tuple[str, object]] = []

    async def _command(self, kind: str, target: str, value: object) -> None:
        self.commands.append((kind, target, value))
        self.in_flight.append((kind, value))
        try:
            gate = self.gates.get(value)
            if gate is not None:
                await gate.wait()
        finally:
            self.in_flight.remove((kind, value))


@pytest.mark.asyncio
async def test_due_brightness_waits_for_running_command() -> None:
    """Only one command per group runs and the newest value ends durable."""

    client = living_room_bridge(GatedClient())
    client.gates[10.0] = asyncio.Event()
    client.gates[20.0] = asyncio.Event()
    store, optimistic = await _setup(client)

    first = optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 10)
    await asyncio.sleep(DEBOUNCE * 2)
    assert client.in_flight == [("brightness", 10.0)]

    second = optimistic.request_change("room-1", CommandKind.BRIGHTNESS, 20)
    assert second is not first
    await asyncio.sleep(DEBOUNCE * 2)

    assert client.in_flight == [("brightness", 10.0)]
    assert optimistic.effective_group("room-1").snapshot.brightness == 20.0
    with pytest.raises(ChangeRejectedError):
        optimistic.request_change("room-1", CommandKind.POWER, False)

    client.gates[10.0].set()
    await first
    await asyncio.sleep(DEBOUNCE)
    assert client.in_flight == [("brightness", 20.0)]
    assert optimistic.effective_group("room-1").snapshot.brightness == 20.0

    client.gates[20.0].set()
    await second

    assert client.commands == [
        ("brightness", "gl-room", 10.0),
        ("brightness", "gl-room", 20.0),
    ]
    assert store.group("room-1").snapshot.brightness == 20.0
    assert optimistic.overlay("room-1") == {}
    assert optimistic.is_busy("room-1") is False


@pytest.mark.asyncio
async def test_promotion_failure_reaches_the_caller(
    fake_client: FakeBridgeClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    store, optimistic = await _setup(fake_client)

    async def _broken_promotion(*_args: object) -> None:
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(store, "async_apply_confirmed", _broken_promotion)

    future = optimistic.request_change("room-1", CommandKind.POWER, False)
    with pytest.raises(RuntimeError, match="store unavailable"):
        await future

    assert optimistic.overlay("room-1") == {}
    assert optimistic.is_busy("room-1") is False
    assert store.group("room-1").snapshot.on is True
