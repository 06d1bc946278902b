"""Reconnecting WebSocket client."""

from .backoff import ReconnectPolicy
from .client import ConnectionState, TetherClient
from .config import TetherConfig, load_config
from .errors import (
    TetherClientError,
    TetherClosed,
    TetherConfigError,
    TetherConnectionError,
    TetherHandshakeError,
    TetherOpenError,
    TetherReceiveError,
    TetherSendError,
    TetherTaskError,
    TetherTimeout,
)
from .observer import CallbackObserver, TetherObserver
from .protocol import decode_json, encode_json
from .send_queue import SendQueue
from .transport import (
    AiohttpTransport,
    Endpoint,
    Message,
    Transport,
    WebsocketsTransport,
)

__all__ = [
    "AiohttpTransport",
    "CallbackObserver",
    "ConnectionState",
    "Endpoint",
    "Message",
    "ReconnectPolicy",
    "SendQueue",
    "TetherClient",
    "TetherClientError",
    "TetherClosed",
    "TetherConfig",
    "TetherConfigError",
    "TetherConnectionError",
    "TetherHandshakeError",
    "TetherObserver",
    "TetherOpenError",
    "TetherReceiveError",
    "TetherSendError",
    "TetherTaskError",
    "TetherTimeout",
    "Transport",
    "WebsocketsTransport",
    "decode_json",
    "encode_json",
    "load_config",
]
