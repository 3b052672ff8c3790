"""Event stream health tracking primitives."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any

from ..domain.events import StreamPhase


@dataclass
class StreamHealthTracker:
    """Track stream phase, counters and heartbeat and payload timestamps."""

    phase: StreamPhase = StreamPhase.IDLE
    connected_since: float | None = None
    last_phase_at: float | None = None
    last_heartbeat_at: float | None = None
    last_payload_at: float | None = None
    frames: int = 0
    events: int = 0
    parse_failures: int = 0
    last_error: str | None = None

    def update_phase(
        self,
        phase: StreamPhase,
        *,
        description: str | None = None,
        timestamp: float | None = None,
    ) -> bool:
        """Record a phase transition and return True when it changed."""

        now = timestamp or time.time()
        if description:
            self.last_error = description
        if phase is self.phase:
            return False
        self.phase = phase
        self.last_phase_at = now
        if phase is StreamPhase.CONNECTED:
            self.connected_since = now
        elif phase is not StreamPhase.CONNECTING:
            self.connected_since = None
        return True

    def mark_payload(self, *, events: int = 0, timestamp: float | None = None) -> None:
        """Record a ``data:`` frame carrying ``events`` events."""

        now = timestamp or time.time()
        self.frames += 1
        self.events += events
        self.last_payload_at = now
        if self.last_heartbeat_at is None or now >= self.last_heartbeat_at:
            self.last_heartbeat_at = now

    def mark_heartbeat(self, *, timestamp: float | None = None) -> None:
        """Record a keepalive line."""

        now = timestamp or time.time()
        if self.last_heartbeat_at is None or now >= self.last_heartbeat_at:
            self.last_heartbeat_at = now

    def mark_parse_failure(self) -> None:
        """Count a malformed ``data:`` line."""

        self.parse_failures += 1

    def connected_minutes(self, *, now: float | None = None) -> int:
        """Return the number of minutes the current connection has lasted."""

        if self.connected_since is None:
            return 0
        current = now or time.time()
        if current <= self.connected_since:
            return 0
        return int((current - self.connected_since) / 60)

    def snapshot(self, *, now: float | None = None) -> dict[str, Any]:
        """Return a serializable snapshot of the tracker state."""

        current = now or time.time()
        return {
            "phase": self.phase.value,
            "connected_since": self.connected_since,
            "connected_minutes": self.connected_minutes(now=current),
            "last_phase_at": self.last_phase_at,
            "last_heartbeat_at": self.last_heartbeat_at,
            "last_payload_at": self.last_payload_at,
            "frames": self.frames,
            "events": self.events,
            "parse_failures": self.parse_failures,
            "last_error": self.last_error,
        }


__all__ = ["StreamHealthTracker"]
