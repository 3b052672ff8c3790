"""Constants for the Hue Dat integration."""

from __future__ import annotations

from datetime import timedelta
from typing import Final

# Domain
DOMAIN: Final = "huedat"

# Config entry keys
CONF_HOST: Final = "host"
CONF_APP_KEY: Final = "app_key"

# HTTP paths (CLIP v2)
RESOURCE_PATH: Final = "/clip/v2/resource"
BRIDGE_PATH: Final = f"{RESOURCE_PATH}/bridge"
ROOM_PATH: Final = f"{RESOURCE_PATH}/room"
ZONE_PATH: Final = f"{RESOURCE_PATH}/zone"
GROUPED_LIGHT_PATH: Final = f"{RESOURCE_PATH}/grouped_light"
SCENE_PATH: Final = f"{RESOURCE_PATH}/scene"
EVENTSTREAM_PATH: Final = "/eventstream/clip/v2"

# Headers
APP_KEY_HEADER: Final = "hue-application-key"
EVENT_STREAM_ACCEPT: Final = "text/event-stream"

# Timeouts (seconds)
REQUEST_TIMEOUT: Final = 10.0
CONNECT_TIMEOUT: Final = 10.0

# Bridges refuse loopback addresses; a saved loopback host is corrupt data.
LOOPBACK_HOSTS: Final = frozenset({"127.0.0.1", "localhost", "::1"})

# Resource type tags
RTYPE_ROOM: Final = "room"
RTYPE_ZONE: Final = "zone"
RTYPE_GROUPED_LIGHT: Final = "grouped_light"
RTYPE_SCENE: Final = "scene"

GROUP_TYPES: Final = frozenset({RTYPE_ROOM, RTYPE_ZONE})

# Command pacing
GROUPED_LIGHT_MIN_INTERVAL: Final = 1.0
BRIGHTNESS_DEBOUNCE: Final = 0.5

# Stream recovery
MAX_RECONNECT_ATTEMPTS: Final = 5
MAX_RECONNECT_DELAY: Final = 32.0

# Polling
DEFAULT_POLL_INTERVAL: Final = timedelta(seconds=60)
MANUAL_REFRESH_DEBOUNCE: Final = 30.0

# Persistence
STORAGE_VERSION: Final = 1
STORAGE_SAVE_DELAY: Final = 5


def storage_key(entry_id: str) -> str:
    """Return the storage key used to persist the resource cache."""

    return f"{DOMAIN}.{entry_id}.resources"


# --- Dispatcher signal helpers (engine → entities) ---


def signal_group_update(entry_id: str) -> str:
    """Signal name for room/zone state changes dispatched to platforms."""

    return f"{DOMAIN}_{entry_id}_group_update"


def signal_stream_status(entry_id: str) -> str:
    """Signal name for event stream status changes."""

    return f"{DOMAIN}_{entry_id}_stream_status"


# Services
SERVICE_RECONNECT_STREAM: Final = "reconnect_stream"
SERVICE_REFRESH: Final = "refresh"
SERVICE_TURN_OFF_ALL: Final = "turn_off_all"
