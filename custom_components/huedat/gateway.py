"""Rate-limited dispatch of control commands to the bridge."""

from __future__ import annotations

import asyncio
import logging
import time

from .api import HueBridgeClient
from .backend.sanitize import mask_identifier
from .const import GROUPED_LIGHT_MIN_INTERVAL
from .domain.commands import CommandKind, PendingCommand
from .throttle import KeyedRateLimiter, MonotonicCallable, SleepCallable

_LOGGER = logging.getLogger(__name__)


class CommandGateway:
    """Send control commands with a per-target minimum spacing.

    Commands to the same target are spaced at least ``min_interval`` seconds
    apart measured from the moment each wait resolves; a command that arrives
    too early is delayed, never dropped. Targets are independent and power
    commands skip the wait. Failures propagate to the caller untouched and
    nothing is retried here.
    """

    def __init__(
        self,
        client: HueBridgeClient,
        *,
        min_interval: float = GROUPED_LIGHT_MIN_INTERVAL,
        monotonic: MonotonicCallable = time.monotonic,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        self._client = client
        self._limits = KeyedRateLimiter(
            min_interval=min_interval, monotonic=monotonic, sleep=sleep
        )
        self._monotonic = monotonic

    @property
    def client(self) -> HueBridgeClient:
        """Return the bridge client commands are sent through."""

        return self._client

    def last_dispatch(self, target_id: str) -> float | None:
        """Return the monotonic time of the last rate-limited dispatch."""

        return self._limits.last_timestamp(target_id)

    async def async_send(self, command: PendingCommand) -> None:
        """Dispatch ``command`` once its target's rate-limit window allows."""

        target = command.target_id
        if command.rate_limited:

            def _log_wait(delay: float) -> None:
                _LOGGER.debug(
                    "Delaying %s for %s by %.3fs",
                    command.kind.value,
                    mask_identifier(target),
                    delay,
                )

            await self._limits.async_throttle(target, on_wait=_log_wait)

        _LOGGER.debug(
            "Dispatching %s=%s to %s after %.3fs queued",
            command.kind.value,
            command.value,
            mask_identifier(target),
            max(self._monotonic() - command.enqueued_at, 0.0),
        )
        if command.kind is CommandKind.POWER:
            await self._client.set_grouped_light_on(target, bool(command.value))
        elif command.kind is CommandKind.BRIGHTNESS:
            await self._client.set_grouped_light_brightness(
                target, float(command.value)
            )
        else:
            raise ValueError(f"Unsupported command kind: {command.kind}")


__all__ = ["CommandGateway"]
