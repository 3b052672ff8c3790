"""Domain model for the Hue Dat integration."""

from __future__ import annotations

from .commands import CONTINUOUS_KINDS, RATE_LIMIT_EXEMPT, CommandKind, PendingCommand
from .events import EventKind, StreamEvent, StreamPhase, StreamState
from .session import ConnectionSession
from .state import (
    UNSET,
    GroupResource,
    ResourcePatch,
    ResourceSnapshot,
    SceneResource,
    XYColor,
)
from .store import ChangeKind, StateStore, StoreChange

__all__ = [
    "CONTINUOUS_KINDS",
    "RATE_LIMIT_EXEMPT",
    "UNSET",
    "ChangeKind",
    "CommandKind",
    "ConnectionSession",
    "EventKind",
    "GroupResource",
    "PendingCommand",
    "ResourcePatch",
    "ResourceSnapshot",
    "SceneResource",
    "StateStore",
    "StoreChange",
    "StreamEvent",
    "StreamPhase",
    "StreamState",
    "XYColor",
]
