"""WebSocket transport backed by the websockets library."""

from __future__ import annotations

import asyncio
import logging

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    TetherClosed,
    TetherHandshakeError,
    TetherOpenError,
    TetherReceiveError,
    TetherSendError,
    TetherTaskError,
    TetherTimeout,
)
from .base import NORMAL_CLOSURE, Endpoint, Message, Transport

_LOGGER = logging.getLogger(__name__)


async def connect_websocket(
    endpoint: Endpoint,
    *,
    ping_interval: float | None = 20,
    timeout: float = 15.0,
    close_timeout: float = 5.0,
    max_size: int | None = None,
) -> ClientConnection:
    """Connect to a WebSocket endpoint.

    Uses the websockets library which properly implements RFC 6455 frame masking.
    All client-to-server frames are automatically masked per the standard.

    Args:
        endpoint: Target endpoint
        ping_interval: Interval for ping frames
        timeout: Connection timeout
        close_timeout: Time allowed for the closing handshake
        max_size: Maximum inbound message size (None for unlimited)
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                endpoint.url,
                additional_headers=endpoint.headers or None,
                subprotocols=list(endpoint.subprotocols) or None,
                ping_interval=ping_interval,
                close_timeout=close_timeout,
                max_size=max_size,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise TetherTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise TetherHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise TetherOpenError("WebSocket connection failed") from err


def _close_details(err: ConnectionClosed) -> tuple[int | None, str]:
    """Return the close code and reason received from the peer, if any."""
    if err.rcvd is None:
        return None, ""
    return err.rcvd.code, err.rcvd.reason


class WebsocketsTransport(Transport):
    """Transport implementation on top of ``websockets.asyncio.client``."""

    def __init__(
        self,
        *,
        ping_interval: float | None = 20,
        open_timeout: float = 15.0,
        close_timeout: float = 5.0,
        max_size: int | None = None,
    ) -> None:
        self._ping_interval = ping_interval
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._max_size = max_size

    async def open(self, endpoint: Endpoint) -> ClientConnection:
        return await connect_websocket(
            endpoint,
            ping_interval=self._ping_interval,
            timeout=self._open_timeout,
            close_timeout=self._close_timeout,
            max_size=self._max_size,
        )

    async def send(self, handle: ClientConnection, message: Message) -> None:
        try:
            await handle.send(message)
        except ConnectionClosed as err:
            raise TetherSendError("WebSocket closed while sending") from err
        except (OSError, WebSocketException) as err:
            raise TetherSendError("WebSocket send failed") from err

    async def receive(self, handle: ClientConnection) -> Message:
        try:
            return await handle.recv()
        except ConnectionClosedOK as err:
            code, reason = _close_details(err)
            raise TetherClosed(code, reason) from err
        except ConnectionClosed as err:
            code, _ = _close_details(err)
            raise TetherTaskError(
                "WebSocket connection closed abnormally", code=code
            ) from err
        except (OSError, WebSocketException) as err:
            raise TetherReceiveError("WebSocket receive failed") from err

    async def close(
        self,
        handle: ClientConnection,
        code: int = NORMAL_CLOSURE,
        reason: str = "",
    ) -> None:
        try:
            await handle.close(code=code, reason=reason)
        except (OSError, WebSocketException) as err:
            _LOGGER.debug("WebSocket close failed: %s", err)
