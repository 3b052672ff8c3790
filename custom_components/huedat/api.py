from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
import logging
from typing import Any

import aiohttp

from .backend.sanitize import mask_identifier, redact_text, redact_token_fragment
from .codecs.hue_codec import (
    decode_resource_list,
    encode_brightness,
    encode_power,
    encode_scene_recall,
)
from .const import (
    APP_KEY_HEADER,
    BRIDGE_PATH,
    CONNECT_TIMEOUT,
    EVENT_STREAM_ACCEPT,
    EVENTSTREAM_PATH,
    GROUPED_LIGHT_PATH,
    REQUEST_TIMEOUT,
    ROOM_PATH,
    SCENE_PATH,
    ZONE_PATH,
)
from .domain.session import ConnectionSession

_LOGGER = logging.getLogger(__name__)

# Toggle to preview bodies in debug logs (redacted). Leave False by default.
API_LOG_PREVIEW = False


class BridgeError(Exception):
    """Base class for bridge communication failures."""


class BridgeConnectionError(BridgeError):
    """The bridge did not answer (refused, unreachable or timed out)."""


class BridgeResponseError(BridgeError):
    """The bridge answered with an explicit error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        errors: Iterable[str] = (),
    ) -> None:
        super().__init__(message)
        self.status = status
        self.errors = list(errors)


class BridgeAuthError(BridgeResponseError):
    """The application key was rejected; the bridge must be paired again."""


class BridgeProtocolError(BridgeError):
    """The bridge answered with a payload that could not be understood."""


class HueBridgeClient:
    """Thin async client for a local CLIP v2 bridge (HA-safe).

    REST calls and the event stream share one ``aiohttp`` session but use
    separate timeouts: control and read calls are bounded, the stream only
    bounds the connect phase.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        bridge: ConnectionSession,
        *,
        request_timeout: float = REQUEST_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        """Initialise the client for ``bridge``."""
        self._session = session
        self._bridge = bridge
        self._request_timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._stream_timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout, sock_read=None
        )

    @property
    def bridge(self) -> ConnectionSession:
        """Return the connection session this client talks to."""

        return self._bridge

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {APP_KEY_HEADER: self._bridge.app_key, "Accept": "application/json"}
        headers.update(extra)
        return headers

    def _url(self, path: str) -> str:
        return path if path.startswith("http") else f"{self._bridge.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Perform an HTTP request and return the decoded JSON body.

        Errors are logged WITHOUT secrets and mapped onto the ``Bridge*``
        exception hierarchy.
        """
        url = self._url(path)
        headers = self._headers(**kwargs.pop("headers", {}))
        timeout = kwargs.pop("timeout", self._request_timeout)
        _LOGGER.debug("HTTP %s %s", method, redact_text(url))

        try:
            async with self._session.request(
                method, url, headers=headers, timeout=timeout, **kwargs
            ) as resp:
                ctype = resp.headers.get("Content-Type", "")
                try:
                    body_text = await resp.text()
                except (aiohttp.ClientPayloadError, UnicodeDecodeError):
                    body_text = "<no body>"

                if resp.status >= 400:
                    # Compact, redacted error; never log RequestInfo (it carries headers).
                    _LOGGER.error(
                        "HTTP error %s %s -> %s; body=%s",
                        method,
                        redact_text(url),
                        resp.status,
                        redact_text(body_text),
                    )
                elif API_LOG_PREVIEW:
                    _LOGGER.debug(
                        "HTTP %s -> %s, ctype=%s, body[0:200]=%r",
                        redact_text(url),
                        resp.status,
                        ctype,
                        (redact_text(body_text) or "")[:200],
                    )
                else:
                    _LOGGER.debug(
                        "HTTP %s -> %s, ctype=%s", redact_text(url), resp.status, ctype
                    )

                if resp.status in (401, 403):
                    raise BridgeAuthError(
                        f"Application key rejected (status {resp.status})",
                        status=resp.status,
                    )
                if resp.status >= 400:
                    raise BridgeResponseError(
                        f"Bridge returned status {resp.status}", status=resp.status
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as err:
                    raise BridgeProtocolError(
                        f"Malformed JSON from {method} {path}"
                    ) from err

        except BridgeError:
            raise
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, TimeoutError) as err:
            _LOGGER.error(
                "Request %s %s failed (sanitized): %s",
                method,
                redact_text(url),
                redact_text(str(err)) or type(err).__name__,
            )
            raise BridgeConnectionError(str(err) or type(err).__name__) from err

    async def _get_resources(self, path: str) -> list[dict[str, Any]]:
        """Return the ``data`` array of a resource list.

        A non-empty ``errors`` array fails the call even on HTTP success.
        """

        raw = await self._request("GET", path)
        try:
            envelope = decode_resource_list(raw)
        except ValueError as err:
            raise BridgeProtocolError(f"Unexpected payload from {path}") from err
        if envelope.errors:
            descriptions = [entry.description for entry in envelope.errors]
            _LOGGER.warning(
                "Bridge reported errors for %s: %s",
                path,
                redact_text("; ".join(descriptions)),
            )
            raise BridgeResponseError(
                f"Bridge reported {len(descriptions)} error(s) for {path}",
                errors=descriptions,
            )
        return envelope.data

    async def _put(self, path: str, body: dict[str, Any]) -> None:
        raw = await self._request("PUT", path, json=body)
        errors = raw.get("errors") if isinstance(raw, dict) else None
        if errors:
            descriptions = [
                str(entry.get("description", entry)) if isinstance(entry, dict) else str(entry)
                for entry in errors
            ]
            raise BridgeResponseError(
                f"Bridge rejected write to {path}", errors=descriptions
            )

    # ----------------- Public API -----------------

    async def validate_connection(self) -> None:
        """Raise unless the bridge answers and accepts the application key."""

        _LOGGER.debug(
            "Validating application key %s",
            redact_token_fragment(self._bridge.app_key),
        )
        await self._get_resources(BRIDGE_PATH)

    async def fetch_rooms(self) -> list[dict[str, Any]]:
        """Return raw room records."""

        return await self._get_resources(ROOM_PATH)

    async def fetch_zones(self) -> list[dict[str, Any]]:
        """Return raw zone records."""

        return await self._get_resources(ZONE_PATH)

    async def fetch_grouped_lights(self) -> list[dict[str, Any]]:
        """Return raw grouped light records."""

        return await self._get_resources(GROUPED_LIGHT_PATH)

    async def fetch_scenes(self) -> list[dict[str, Any]]:
        """Return raw scene records."""

        return await self._get_resources(SCENE_PATH)

    async def set_grouped_light_on(self, grouped_light_id: str, on: bool) -> None:
        """Switch a grouped light on or off."""

        _LOGGER.debug(
            "Power %s -> %s", mask_identifier(grouped_light_id), "on" if on else "off"
        )
        await self._put(f"{GROUPED_LIGHT_PATH}/{grouped_light_id}", encode_power(on))

    async def set_grouped_light_brightness(
        self, grouped_light_id: str, brightness: float
    ) -> None:
        """Set the absolute brightness (0..100) of a grouped light."""

        _LOGGER.debug(
            "Brightness %s -> %.1f", mask_identifier(grouped_light_id), brightness
        )
        await self._put(
            f"{GROUPED_LIGHT_PATH}/{grouped_light_id}", encode_brightness(brightness)
        )

    async def activate_scene(self, scene_id: str) -> None:
        """Recall a scene."""

        await self._put(f"{SCENE_PATH}/{scene_id}", encode_scene_recall())

    @asynccontextmanager
    async def open_event_stream(self) -> AsyncIterator[aiohttp.ClientResponse]:
        """Open the event stream and yield the streaming response.

        The response is released when the context exits, which closes the
        socket. Handshake failures raise the same errors as REST calls.
        """

        url = self._url(EVENTSTREAM_PATH)
        headers = self._headers(Accept=EVENT_STREAM_ACCEPT)
        _LOGGER.debug("Opening event stream %s", redact_text(url))
        try:
            resp = await self._session.get(
                url, headers=headers, timeout=self._stream_timeout
            )
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, TimeoutError) as err:
            raise BridgeConnectionError(str(err) or type(err).__name__) from err

        try:
            if resp.status in (401, 403):
                raise BridgeAuthError(
                    f"Event stream rejected the application key (status {resp.status})",
                    status=resp.status,
                )
            if resp.status != 200:
                raise BridgeResponseError(
                    f"Event stream handshake failed (status {resp.status})",
                    status=resp.status,
                )
            yield resp
        finally:
            resp.release()


__all__ = [
    "BridgeAuthError",
    "BridgeConnectionError",
    "BridgeError",
    "BridgeProtocolError",
    "BridgeResponseError",
    "HueBridgeClient",
]
