"""WebSocket transport backed by an aiohttp ClientSession.

Useful when the caller already runs an aiohttp session and wants the
client's connections to share its connector, cookies and proxy settings.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
from aiohttp import WSCloseCode, WSMsgType

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

_CLOSE_TYPES = frozenset({WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED})


class AiohttpTransport(Transport):
    """Transport implementation on top of ``aiohttp.ClientSession.ws_connect``.

    A session passed in is left open by ``aclose``; a session the transport
    created itself is closed there.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        heartbeat: float | None = 30,
        timeout: float = 15.0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat
        self._timeout = timeout

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def open(self, endpoint: Endpoint) -> aiohttp.ClientWebSocketResponse:
        session = self._get_session()
        try:
            return await asyncio.wait_for(
                session.ws_connect(
                    endpoint.url,
                    headers=endpoint.headers or None,
                    protocols=endpoint.subprotocols,
                    heartbeat=self._heartbeat,
                ),
                timeout=self._timeout,
            )
        except TimeoutError as err:
            raise TetherTimeout("WebSocket connection timed out") from err
        except aiohttp.WSServerHandshakeError as err:
            raise TetherHandshakeError("WebSocket handshake failed") from err
        except (OSError, aiohttp.ClientError) as err:
            raise TetherOpenError("WebSocket connection failed") from err

    async def send(
        self, handle: aiohttp.ClientWebSocketResponse, message: Message
    ) -> None:
        try:
            if isinstance(message, str):
                await handle.send_str(message)
            else:
                await handle.send_bytes(message)
        except (OSError, aiohttp.ClientError) as err:
            raise TetherSendError("WebSocket send failed") from err

    async def receive(self, handle: aiohttp.ClientWebSocketResponse) -> Message:
        while True:
            try:
                msg = await handle.receive()
            except (OSError, aiohttp.ClientError) as err:
                raise TetherReceiveError("WebSocket receive failed") from err

            if msg.type is WSMsgType.TEXT:
                return msg.data
            if msg.type is WSMsgType.BINARY:
                return msg.data

            if msg.type is WSMsgType.CLOSE:
                raise TetherClosed(msg.data, msg.extra or "")

            if msg.type in _CLOSE_TYPES:
                code = handle.close_code
                if code is None or code == WSCloseCode.ABNORMAL_CLOSURE:
                    raise TetherTaskError(
                        "WebSocket connection closed abnormally", code=code
                    )
                raise TetherClosed(code)

            if msg.type is WSMsgType.ERROR:
                raise TetherTaskError(
                    f"WebSocket connection failed: {handle.exception()}"
                )

            # PING/PONG frames are answered by aiohttp itself.
            _LOGGER.debug("Skipping %s frame", msg.type)

    async def close(
        self,
        handle: aiohttp.ClientWebSocketResponse,
        code: int = NORMAL_CLOSURE,
        reason: str = "",
    ) -> None:
        try:
            await handle.close(code=code, message=reason.encode())
        except (OSError, aiohttp.ClientError) as err:
            _LOGGER.debug("WebSocket close failed: %s", err)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
