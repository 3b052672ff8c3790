"""Stream event and stream state value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .state import ResourcePatch


class EventKind(str, Enum):
    """Kinds of resource events carried by the event stream."""

    UPDATE = "update"
    ADD = "add"
    DELETE = "delete"
    ERROR = "error"

    @classmethod
    def parse(cls, value: str | None) -> EventKind:
        """Return the kind for ``value``, treating unknown tags as updates."""

        try:
            return cls(str(value))
        except ValueError:
            return cls.UPDATE


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One resource record from an event stream batch."""

    resource_id: str
    resource_type: str
    patch: ResourcePatch = field(default_factory=ResourcePatch)
    kind: EventKind = EventKind.UPDATE


class StreamPhase(str, Enum):
    """Lifecycle phases of the event stream."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class StreamState:
    """Event stream state published to listeners."""

    phase: StreamPhase
    cause: BaseException | None = field(default=None, compare=False)
    description: str | None = None
    requested: bool = False

    @classmethod
    def idle(cls) -> StreamState:
        return cls(StreamPhase.IDLE)

    @classmethod
    def connecting(cls) -> StreamState:
        return cls(StreamPhase.CONNECTING)

    @classmethod
    def connected(cls) -> StreamState:
        return cls(StreamPhase.CONNECTED)

    @classmethod
    def disconnected(
        cls, cause: BaseException | None = None, *, requested: bool = False
    ) -> StreamState:
        description = f"{type(cause).__name__}: {cause}" if cause else None
        return cls(
            StreamPhase.DISCONNECTED,
            cause=cause,
            description=description,
            requested=requested,
        )

    @classmethod
    def errored(cls, description: str) -> StreamState:
        return cls(StreamPhase.ERRORED, description=description)

    @property
    def is_connected(self) -> bool:
        """Return True while events are flowing."""

        return self.phase is StreamPhase.CONNECTED


__all__ = ["EventKind", "StreamEvent", "StreamPhase", "StreamState"]
