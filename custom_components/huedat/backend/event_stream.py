"""Server-Sent-Events client for the bridge event stream."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, Awaitable, Callable
from contextlib import suppress
import inspect
import logging
from typing import Any

from ..api import HueBridgeClient
from ..codecs.hue_codec import decode_event_data
from ..const import DOMAIN
from ..domain.events import StreamEvent, StreamPhase, StreamState
from .sanitize import redact_text
from .stream_health import StreamHealthTracker

_LOGGER = logging.getLogger(__name__)

StateListener = Callable[[StreamState], None]
BatchListener = Callable[[list[StreamEvent]], Awaitable[None] | None]

_DATA_PREFIX = "data:"
_HEARTBEAT_PREFIX = ":"


class StreamClient:
    """Own the event stream lifecycle for one bridge.

    Each :meth:`start` launches a single read task for one connection
    attempt. The task publishes state transitions
    (``connecting`` -> ``connected``/``errored`` -> ``disconnected``) and the
    decoded event batches in wire order. It never retries by itself and never
    touches the state store; listeners decide what to do with both.
    """

    def __init__(self, client: HueBridgeClient, *, name: str = DOMAIN) -> None:
        self._client = client
        self._name = name
        self._task: asyncio.Task | None = None
        self._closing = False
        self._state = StreamState.idle()
        self._state_listeners: list[StateListener] = []
        self._batch_listeners: list[BatchListener] = []
        self.health = StreamHealthTracker()

    @property
    def state(self) -> StreamState:
        """Return the most recently published stream state."""

        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True while the stream is delivering events."""

        return self._state.is_connected

    def is_running(self) -> bool:
        """Return True if a read task is active."""

        return bool(self._task and not self._task.done())

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state transitions; returns an unsubscribe callback."""

        self._state_listeners.append(listener)
        return lambda: self._discard(self._state_listeners, listener)

    def add_batch_listener(self, listener: BatchListener) -> Callable[[], None]:
        """Subscribe to event batches; async listeners are awaited in order."""

        self._batch_listeners.append(listener)
        return lambda: self._discard(self._batch_listeners, listener)

    @staticmethod
    def _discard(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def start(self) -> asyncio.Task:
        """Start one connection attempt unless one is already running."""

        if self._task and not self._task.done():
            return self._task
        _LOGGER.debug("Stream: start requested")
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(
            self._runner(), name=f"{self._name}-event-stream"
        )
        return self._task

    async def stop(self) -> None:
        """Cancel the read task and wait for it to release the socket."""

        _LOGGER.debug("Stream: stop requested")
        self._closing = True
        task, self._task = self._task, None
        if task is None or task.done():
            if self._state.phase not in (StreamPhase.IDLE, StreamPhase.DISCONNECTED):
                self._set_state(StreamState.disconnected(requested=True))
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Core loop
    # ------------------------------------------------------------------
    async def _runner(self) -> None:
        """Run one connection attempt until EOF, error or cancellation."""

        self._set_state(StreamState.connecting())
        cause: BaseException | None = None
        requested = False
        try:
            async with self._client.open_event_stream() as resp:
                _LOGGER.info("Stream: connected")
                self._set_state(StreamState.connected())
                await self._read_lines(resp.content)
            _LOGGER.info("Stream: closed by bridge")
        except asyncio.CancelledError:
            requested = True
            raise
        except Exception as err:
            cause = err
            description = f"{type(err).__name__}: {redact_text(str(err))}"
            _LOGGER.info("Stream: connection error (%s)", description)
            _LOGGER.debug("Stream: connection error details", exc_info=True)
            self._set_state(StreamState.errored(description))
        finally:
            self._set_state(
                StreamState.disconnected(cause, requested=requested or self._closing)
            )

    async def _read_lines(self, content: AsyncIterable[bytes]) -> None:
        """Consume ``content`` line by line until the remote end closes it."""

        async for raw in content:
            await self._handle_line(raw)

    async def _handle_line(self, raw: bytes | str) -> None:
        """Process one line of the event stream."""

        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            return
        if line.startswith(_HEARTBEAT_PREFIX):
            self.health.mark_heartbeat()
            return
        if not line.startswith(_DATA_PREFIX):
            return
        payload = line[len(_DATA_PREFIX) :].strip()
        try:
            events = decode_event_data(payload)
        except ValueError as err:
            self.health.mark_parse_failure()
            _LOGGER.warning("Stream: skipping malformed data line: %s", err)
            return
        self.health.mark_payload(events=len(events))
        if events:
            await self._publish_batch(events)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    async def _publish_batch(self, events: list[StreamEvent]) -> None:
        _LOGGER.debug("Stream: batch of %d event(s)", len(events))
        for listener in list(self._batch_listeners):
            try:
                result = listener(events)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                _LOGGER.exception("Stream: batch listener failed")

    def _set_state(self, state: StreamState) -> None:
        if state == self._state:
            return
        self._state = state
        self.health.update_phase(state.phase, description=state.description)
        _LOGGER.debug("Stream: state -> %s", state.phase.value)
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                _LOGGER.exception("Stream: state listener failed")


__all__ = ["BatchListener", "StateListener", "StreamClient"]
