"""Backend package exports."""

from __future__ import annotations

from typing import Any

from .stream_health import StreamHealthTracker

__all__ = [
    "ReconnectionSupervisor",
    "StreamClient",
    "StreamHealthTracker",
    "backoff_delay",
]


def __getattr__(name: str) -> Any:
    """Lazily import stream classes to avoid circular imports with ``api``."""

    if name == "StreamClient":
        from .event_stream import StreamClient

        globals()[name] = StreamClient
        return StreamClient
    if name in {"ReconnectionSupervisor", "backoff_delay"}:
        from .reconnect import ReconnectionSupervisor, backoff_delay

        mapping = {
            "ReconnectionSupervisor": ReconnectionSupervisor,
            "backoff_delay": backoff_delay,
        }
        value = mapping[name]
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
