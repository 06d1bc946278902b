"""Transport layer for the Tether client.

This package contains all socket I/O and WebSocket framing, delegated to
third-party WebSocket libraries.

Components:
- base: Transport contract, Endpoint and Message types
- ws: websockets-backed transport (default)
- aiohttp_ws: aiohttp-backed transport
"""

from .aiohttp_ws import AiohttpTransport
from .base import NORMAL_CLOSURE, Endpoint, Message, Transport
from .ws import WebsocketsTransport, connect_websocket

__all__ = [
    "NORMAL_CLOSURE",
    "AiohttpTransport",
    "Endpoint",
    "Message",
    "Transport",
    "WebsocketsTransport",
    "connect_websocket",
]
