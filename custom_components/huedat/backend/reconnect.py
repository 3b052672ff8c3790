"""Bounded exponential-backoff recovery for the event stream."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
import logging

from ..const import MAX_RECONNECT_ATTEMPTS, MAX_RECONNECT_DELAY
from ..domain.events import StreamPhase, StreamState
from ..throttle import SleepCallable
from .event_stream import StreamClient

_LOGGER = logging.getLogger(__name__)


def backoff_delay(attempt: int, max_delay: float = MAX_RECONNECT_DELAY) -> float:
    """Return the delay before 1-indexed reconnect ``attempt``."""

    if attempt < 1:
        return 0.0
    return float(min(2 ** (attempt - 1), max_delay))


class ReconnectionSupervisor:
    """Restart the event stream after unexpected disconnections.

    Each unrequested ``disconnected`` schedules one delayed restart, waiting
    1, 2, 4, 8 then 16 seconds. After ``max_attempts`` consecutive failures
    the supervisor gives up and leaves the stream disconnected until
    :meth:`async_force_reconnect` is called. Any ``connected`` resets the
    count.
    """

    def __init__(
        self,
        stream: StreamClient,
        *,
        session_active: Callable[[], bool],
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        max_delay: float = MAX_RECONNECT_DELAY,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        self._stream = stream
        self._session_active = session_active
        self._max_attempts = max_attempts
        self._max_delay = max_delay
        self._sleep = sleep
        self._attempts = 0
        self._task: asyncio.Task | None = None
        self._unsub: Callable[[], None] | None = None
        self._stopped = False

    @property
    def attempts(self) -> int:
        """Return the number of reconnects since the last success."""

        return self._attempts

    @property
    def exhausted(self) -> bool:
        """Return True once the attempt budget is spent."""

        return self._attempts >= self._max_attempts

    @property
    def pending(self) -> bool:
        """Return True while a delayed reconnect is scheduled."""

        return bool(self._task and not self._task.done())

    def async_start(self) -> None:
        """Begin watching the stream's state transitions."""

        self._stopped = False
        if self._unsub is None:
            self._unsub = self._stream.add_state_listener(self._handle_state)

    async def async_stop(self) -> None:
        """Cancel any scheduled reconnect and stop watching the stream."""

        self._stopped = True
        if self._unsub is not None:
            self._unsub()
            self._unsub = None
        await self._cancel_pending()

    async def async_force_reconnect(self) -> None:
        """Restart the stream now, resetting the attempt count."""

        _LOGGER.info("Stream: manual reconnect requested")
        await self._cancel_pending()
        self._attempts = 0
        await self._stream.stop()
        if self._stopped or not self._session_active():
            _LOGGER.debug("Stream: no active session; manual reconnect skipped")
            return
        self._stream.start()

    def _handle_state(self, state: StreamState) -> None:
        if state.phase is StreamPhase.CONNECTED:
            if self._attempts:
                _LOGGER.info(
                    "Stream: reconnected after %d attempt(s)", self._attempts
                )
            self._attempts = 0
            return
        if state.phase is StreamPhase.DISCONNECTED and not state.requested:
            self._schedule()

    def _schedule(self) -> None:
        if self._stopped or self.pending:
            return
        if not self._session_active():
            _LOGGER.debug("Stream: no active session; not reconnecting")
            return
        if self._attempts >= self._max_attempts:
            _LOGGER.warning(
                "Stream: giving up after %d reconnect attempt(s)", self._attempts
            )
            return
        self._attempts += 1
        delay = backoff_delay(self._attempts, self._max_delay)
        _LOGGER.info(
            "Stream: reconnect attempt %d/%d in %.0fs",
            self._attempts,
            self._max_attempts,
            delay,
        )
        self._task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay), name="huedat-stream-reconnect"
        )

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._task = None
        if self._stopped or not self._session_active():
            _LOGGER.debug("Stream: session gone; reconnect aborted")
            return
        self._stream.start()

    async def _cancel_pending(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


__all__ = ["ReconnectionSupervisor", "backoff_delay"]
