"""Control command types for grouped lights."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import time
from typing import Any, Final


class CommandKind(str, Enum):
    """Supported control command kinds."""

    POWER = "power"
    BRIGHTNESS = "brightness"


# Power toggles skip the per-target rate limit so an "off" lands instantly.
RATE_LIMIT_EXEMPT: Final = frozenset({CommandKind.POWER})

# Kinds fed by continuous inputs (dials, sliders) that are debounced.
CONTINUOUS_KINDS: Final = frozenset({CommandKind.BRIGHTNESS})


@dataclass(frozen=True, slots=True)
class PendingCommand:
    """A control command waiting for its rate-limit window."""

    target_id: str
    kind: CommandKind
    value: Any
    enqueued_at: float = field(default_factory=time.monotonic, compare=False)

    @classmethod
    def power(cls, target_id: str, on: bool) -> PendingCommand:
        return cls(target_id, CommandKind.POWER, bool(on))

    @classmethod
    def brightness(cls, target_id: str, brightness: float) -> PendingCommand:
        return cls(target_id, CommandKind.BRIGHTNESS, float(brightness))

    @property
    def rate_limited(self) -> bool:
        """Return True when the command must honour the target rate limit."""

        return self.kind not in RATE_LIMIT_EXEMPT


__all__ = [
    "CONTINUOUS_KINDS",
    "RATE_LIMIT_EXEMPT",
    "CommandKind",
    "PendingCommand",
]
