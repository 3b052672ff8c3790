# ruff: noqa: D100,D101,D102,D103,D104,D105,D106,D107,INP001
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
import json
from typing import Any

from homeassistant.core import HomeAssistant
import pytest
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.huedat.api import BridgeError
from custom_components.huedat.const import CONF_APP_KEY, CONF_HOST, DOMAIN
from custom_components.huedat.domain.session import ConnectionSession

BRIDGE_HOST = "192.168.1.20"
APP_KEY = "s3cr3t-application-key-0123456789"


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------
def grouped_light_payload(
    light_id: str, *, on: bool = True, brightness: float = 50.0
) -> dict[str, Any]:
    return {
        "id": light_id,
        "type": "grouped_light",
        "on": {"on": on},
        "dimming": {"brightness": brightness},
    }


def group_payload(
    group_id: str,
    name: str,
    grouped_light_id: str | None,
    *,
    rtype: str = "room",
    archetype: str = "living_room",
    children: Iterable[str] = (),
) -> dict[str, Any]:
    services = (
        [{"rid": grouped_light_id, "rtype": "grouped_light"}]
        if grouped_light_id
        else []
    )
    return {
        "id": group_id,
        "type": rtype,
        "metadata": {"name": name, "archetype": archetype},
        "children": [{"rid": child, "rtype": "device"} for child in children],
        "services": services,
    }


def scene_payload(
    scene_id: str,
    name: str,
    group_id: str,
    *,
    group_type: str = "room",
    active: str = "inactive",
) -> dict[str, Any]:
    return {
        "id": scene_id,
        "type": "scene",
        "metadata": {"name": name},
        "group": {"rid": group_id, "rtype": group_type},
        "status": {"active": active},
    }


def event_line(*records: dict[str, Any], kind: str = "update") -> bytes:
    envelope = {
        "creationtime": "2024-05-01T10:00:00Z",
        "id": "evt-1",
        "type": kind,
        "data": list(records),
    }
    return f"data: {json.dumps([envelope])}\n".encode()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeClock:
    """Deterministic monotonic clock whose sleep advances time."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class FakeStreamContent:
    """Async line iterator fed by the test; ``close`` ends the stream."""

    _EOF = object()

    def __init__(self, lines: Iterable[bytes] = ()) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        for line in lines:
            self._queue.put_nowait(line)

    def feed(self, line: bytes | str) -> None:
        self._queue.put_nowait(line)

    def close(self) -> None:
        self._queue.put_nowait(self._EOF)

    def __aiter__(self) -> FakeStreamContent:
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is self._EOF:
            raise StopAsyncIteration
        return item


class FakeStreamResponse:
    def __init__(self, content: FakeStreamContent) -> None:
        self.status = 200
        self.content = content


class FakeBridgeClient:
    """In-memory stand-in for :class:`HueBridgeClient`."""

    def __init__(self, *_args: Any, **_kwargs: Any) -> None:
        self.rooms: list[dict[str, Any]] = []
        self.zones: list[dict[str, Any]] = []
        self.grouped_lights: list[dict[str, Any]] = []
        self.scenes: list[dict[str, Any]] = []
        self.fetch_error: BaseException | None = None
        self.command_error: BaseException | None = None
        self.commands: list[tuple[str, str, Any]] = []
        self.fetch_count = 0
        self.stream_script: list[Any] = []
        self.streams: list[FakeStreamContent] = []
        self.stream_opened = asyncio.Event()
        self.validated = 0

    async def validate_connection(self) -> None:
        self.validated += 1
        if self.fetch_error is not None:
            raise self.fetch_error

    async def _fetch(self, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(item) for item in items]

    async def fetch_rooms(self) -> list[dict[str, Any]]:
        return await self._fetch(self.rooms)

    async def fetch_zones(self) -> list[dict[str, Any]]:
        return await self._fetch(self.zones)

    async def fetch_grouped_lights(self) -> list[dict[str, Any]]:
        self.fetch_count += 1
        return await self._fetch(self.grouped_lights)

    async def fetch_scenes(self) -> list[dict[str, Any]]:
        return await self._fetch(self.scenes)

    async def _command(self, kind: str, target: str, value: Any) -> None:
        self.commands.append((kind, target, value))
        await asyncio.sleep(0)
        if self.command_error is not None:
            raise self.command_error

    async def set_grouped_light_on(self, grouped_light_id: str, on: bool) -> None:
        await self._command("power", grouped_light_id, on)

    async def set_grouped_light_brightness(
        self, grouped_light_id: str, brightness: float
    ) -> None:
        await self._command("brightness", grouped_light_id, brightness)

    async def activate_scene(self, scene_id: str) -> None:
        await self._command("scene", scene_id, None)

    @asynccontextmanager
    async def open_event_stream(self) -> AsyncIterator[FakeStreamResponse]:
        entry = self.stream_script.pop(0) if self.stream_script else self.fetch_error
        if isinstance(entry, BaseException):
            raise entry
        content = entry if isinstance(entry, FakeStreamContent) else FakeStreamContent()
        self.streams.append(content)
        self.stream_opened.set()
        yield FakeStreamResponse(content)


def living_room_bridge(client: FakeBridgeClient) -> FakeBridgeClient:
    """Populate ``client`` with one room, one zone and two scenes."""

    client.grouped_lights = [
        grouped_light_payload("gl-room", on=True, brightness=40.0),
        grouped_light_payload("gl-zone", on=False, brightness=0.0),
    ]
    client.rooms = [
        group_payload("room-1", "Living room", "gl-room", children=("dev-1", "dev-2"))
    ]
    client.zones = [
        group_payload("zone-1", "Downstairs", "gl-zone", rtype="zone", archetype="home")
    ]
    client.scenes = [
        scene_payload("scene-1", "Relax", "room-1"),
        scene_payload("scene-2", "Bright", "zone-1", group_type="zone"),
    ]
    return client


class FlakyError(BridgeError):
    """Bridge failure raised by tests."""


@pytest.fixture
def fake_client() -> FakeBridgeClient:
    return living_room_bridge(FakeBridgeClient())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bridge_session() -> ConnectionSession:
    return ConnectionSession(BRIDGE_HOST, APP_KEY)


@pytest.fixture
def entry_data() -> dict[str, str]:
    return {CONF_HOST: BRIDGE_HOST, CONF_APP_KEY: APP_KEY}


@pytest.fixture
def mock_bridge(
    fake_client: FakeBridgeClient, monkeypatch: pytest.MonkeyPatch
) -> FakeBridgeClient:
    """Route the integration's bridge client to ``fake_client``."""

    monkeypatch.setattr(
        "custom_components.huedat.HueBridgeClient", lambda *_a, **_k: fake_client
    )
    return fake_client


@pytest.fixture
def config_entry(entry_data: dict[str, str]) -> MockConfigEntry:
    return MockConfigEntry(
        domain=DOMAIN,
        data=entry_data,
        unique_id=BRIDGE_HOST,
        title=f"Bridge {BRIDGE_HOST}",
        entry_id="bridge-entry",
    )


@pytest.fixture
async def init_integration(
    hass: HomeAssistant,
    enable_custom_integrations: None,
    mock_bridge: FakeBridgeClient,
    config_entry: MockConfigEntry,
) -> MockConfigEntry:
    """Set up the integration against the fake bridge and wait for the stream."""

    config_entry.add_to_hass(hass)
    assert await hass.config_entries.async_setup(config_entry.entry_id)
    await hass.async_block_till_done()
    await mock_bridge.stream_opened.wait()
    return config_entry


async def settle(hass: HomeAssistant) -> None:
    """Let untracked engine tasks run, then wait for Home Assistant jobs."""

    for _ in range(5):
        await asyncio.sleep(0)
    await hass.async_block_till_done()


__all__ = [
    "APP_KEY",
    "BRIDGE_HOST",
    "DOMAIN",
    "FakeBridgeClient",
    "FakeClock",
    "FakeStreamContent",
    "FlakyError",
    "event_line",
    "group_payload",
    "grouped_light_payload",
    "living_room_bridge",
    "scene_payload",
    "settle",
]
