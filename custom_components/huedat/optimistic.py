"""Optimistic light changes with debounce, promotion and rollback."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
import logging
from typing import Any

from .backend.sanitize import mask_identifier
from .const import BRIGHTNESS_DEBOUNCE
from .domain.commands import CONTINUOUS_KINDS, CommandKind, PendingCommand
from .domain.state import (
    GroupResource,
    ResourcePatch,
    ResourceSnapshot,
    clamp_brightness,
)
from .domain.store import StateStore
from .gateway import CommandGateway

_LOGGER = logging.getLogger(__name__)

OverlayListener = Callable[[str], None]


class ChangeRejectedError(Exception):
    """A change conflicts with another operation pending for the same group."""


@dataclass(slots=True)
class _Operation:
    """One optimistic change from first request to settled future."""

    group_id: str
    kind: CommandKind
    value: Any
    generation: int
    future: asyncio.Future
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task | None = None


def _consume_exception(future: asyncio.Future) -> None:
    """Mark a failed future as retrieved when nobody awaits it."""

    if not future.cancelled():
        future.exception()


def _patch_for(kind: CommandKind, value: Any) -> ResourcePatch:
    if kind is CommandKind.POWER:
        return ResourcePatch(on=bool(value))
    return ResourcePatch(brightness=float(value))


class OptimisticUpdateCoordinator:
    """Show requested light changes before the bridge confirms them.

    A request sets an overlay value that :meth:`effective_group` reports
    immediately. Power requests dispatch at once; brightness requests wait
    for ``debounce`` seconds of quiet, so a burst from a slider turns into a
    single command carrying the last value. A group never has more than one
    command in flight; a debounced change that comes due while another is
    running waits for it to settle. On success the value is promoted
    into the store; on failure the overlay is dropped and readers fall back
    to the last durable value.
    """

    def __init__(
        self,
        store: StateStore,
        gateway: CommandGateway,
        *,
        debounce: float = BRIGHTNESS_DEBOUNCE,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._debounce = debounce
        self._generation = 0
        self._overlays: dict[str, dict[CommandKind, tuple[Any, int]]] = {}
        self._pending: dict[str, _Operation] = {}
        self._inflight: dict[str, _Operation] = {}
        self._confirmed: dict[tuple[str, CommandKind], int] = {}
        self._listeners: list[OverlayListener] = []

    # ------------------------------------------------------------------
    # Observers and readers
    # ------------------------------------------------------------------
    def add_listener(self, listener: OverlayListener) -> Callable[[], None]:
        """Call ``listener(group_id)`` whenever an overlay is set or cleared."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, group_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(group_id)
            except Exception:
                _LOGGER.exception("Overlay listener failed for %s", group_id)

    def overlay(self, group_id: str) -> dict[CommandKind, Any]:
        """Return the optimistic values currently shown for ``group_id``."""

        return {
            kind: value for kind, (value, _) in self._overlays.get(group_id, {}).items()
        }

    def is_busy(self, group_id: str) -> bool:
        """Return True while a change is debouncing or in flight."""

        return group_id in self._pending or group_id in self._inflight

    def effective_group(self, group_id: str) -> GroupResource | None:
        """Return the durable group with any optimistic values applied."""

        group = self._store.group(group_id)
        if group is None:
            return None
        overlay = self._overlays.get(group_id)
        if not overlay:
            return group
        snapshot = group.snapshot or ResourceSnapshot(
            id=group.grouped_light_id or group.id, name=group.name
        )
        for kind, (value, _) in overlay.items():
            snapshot = _patch_for(kind, value).apply_to_snapshot(snapshot)
        return replace(group, snapshot=snapshot)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def request_change(
        self, group_id: str, kind: CommandKind, value: Any
    ) -> asyncio.Future:
        """Request ``kind=value`` for ``group_id`` and return its outcome.

        The returned future resolves once the command succeeds, or fails with
        the command's error after the overlay was rolled back. Brightness
        requests arriving during the debounce window share one future.
        Raises :class:`ChangeRejectedError` when another kind of change is
        pending for the same group, or a power change is already pending.
        """

        kind = CommandKind(kind)
        value = bool(value) if kind is CommandKind.POWER else clamp_brightness(value)
        group = self._store.group(group_id)
        if group is None or not group.grouped_light_id:
            raise ChangeRejectedError(f"Group {group_id} has no grouped light")

        pending = self._pending.get(group_id)
        inflight = self._inflight.get(group_id)
        for other in (pending, inflight):
            if other is not None and other.kind is not kind:
                raise ChangeRejectedError(
                    f"{other.kind.value} change pending for {group_id}"
                )
        if kind not in CONTINUOUS_KINDS and (pending or inflight):
            raise ChangeRejectedError(f"{kind.value} change pending for {group_id}")

        self._generation += 1
        generation = self._generation
        self._overlays.setdefault(group_id, {})[kind] = (value, generation)

        if pending is not None:
            # Coalesce into the waiting operation and restart its timer.
            pending.value = value
            pending.generation = generation
            if pending.timer is not None:
                pending.timer.cancel()
            pending.timer = self._schedule(pending)
            self._notify(group_id)
            return pending.future

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.add_done_callback(_consume_exception)
        op = _Operation(group_id, kind, value, generation, future)
        if kind in CONTINUOUS_KINDS:
            self._pending[group_id] = op
            op.timer = self._schedule(op)
        else:
            self._start(op)
        self._notify(group_id)
        return future

    def _schedule(self, op: _Operation) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(
            self._debounce, self._fire, op
        )

    def _fire(self, op: _Operation) -> None:
        if self._pending.get(op.group_id) is not op:
            return
        op.timer = None
        if op.group_id in self._inflight:
            # Held until the running command for this group settles.
            return
        del self._pending[op.group_id]
        self._start(op)

    def _start(self, op: _Operation) -> None:
        self._inflight[op.group_id] = op
        op.task = asyncio.get_running_loop().create_task(
            self._dispatch(op), name=f"huedat-change-{op.kind.value}"
        )

    def _release_held(self, group_id: str) -> None:
        """Start a debounced change that was waiting on a running command."""

        held = self._pending.get(group_id)
        if held is None or held.timer is not None or group_id in self._inflight:
            return
        del self._pending[group_id]
        self._start(held)

    async def _dispatch(self, op: _Operation) -> None:
        group = self._store.group(op.group_id)
        try:
            if group is None or not group.grouped_light_id:
                raise ChangeRejectedError(f"Group {op.group_id} disappeared")
            await self._gateway.async_send(
                PendingCommand(group.grouped_light_id, op.kind, op.value)
            )
            key = (op.group_id, op.kind)
            if self._confirmed.get(key, 0) < op.generation:
                self._confirmed[key] = op.generation
                await self._store.async_apply_confirmed(
                    op.group_id, _patch_for(op.kind, op.value)
                )
        except Exception as err:
            _LOGGER.warning(
                "Rolling back %s for %s: %s",
                op.kind.value,
                mask_identifier(op.group_id),
                err,
            )
            self._clear_overlay(op)
            if not op.future.done():
                op.future.set_exception(err)
        else:
            self._clear_overlay(op)
            if not op.future.done():
                op.future.set_result(None)
        finally:
            if self._inflight.get(op.group_id) is op:
                del self._inflight[op.group_id]
            self._release_held(op.group_id)

    def _clear_overlay(self, op: _Operation) -> None:
        """Drop the overlay unless a newer request replaced it."""

        overlay = self._overlays.get(op.group_id)
        if not overlay:
            return
        current = overlay.get(op.kind)
        if current is None or current[1] != op.generation:
            return
        del overlay[op.kind]
        if not overlay:
            del self._overlays[op.group_id]
        self._notify(op.group_id)

    async def async_shutdown(self) -> None:
        """Abandon changes still debouncing; in-flight commands run on."""

        for op in list(self._pending.values()):
            if op.timer is not None:
                op.timer.cancel()
                op.timer = None
            del self._pending[op.group_id]
            self._clear_overlay(op)
            if not op.future.done():
                op.future.set_exception(
                    ChangeRejectedError("Integration is shutting down")
                )


__all__ = ["ChangeRejectedError", "OptimisticUpdateCoordinator"]
