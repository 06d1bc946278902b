"""Transport contract for the Tether client.

A transport owns everything below the message level: sockets, TLS, the
HTTP upgrade and WebSocket framing. The client only ever sees opaque
connection handles and whole messages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from ..errors import TetherConfigError

Message = str | bytes

NORMAL_CLOSURE = 1000

WS_SCHEMES: frozenset[str] = frozenset({"ws", "wss"})


@dataclass(frozen=True)
class Endpoint:
    """Target of a WebSocket connection.

    Attributes:
        url: ws:// or wss:// URL.
        headers: Extra headers sent with the opening handshake.
        subprotocols: Subprotocols offered during the handshake.
    """

    url: str
    headers: dict[str, str] = field(default_factory=lambda: {})
    subprotocols: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        parts = urlsplit(self.url)
        if parts.scheme not in WS_SCHEMES or not parts.netloc:
            raise TetherConfigError(f"Not a WebSocket URL: {self.url!r}")

    @classmethod
    def parse(cls, endpoint: Endpoint | str) -> Endpoint:
        """Return ``endpoint`` as an Endpoint, parsing plain URL strings."""
        if isinstance(endpoint, Endpoint):
            return endpoint
        return cls(url=endpoint)

    @property
    def is_secure(self) -> bool:
        return urlsplit(self.url).scheme == "wss"


class Transport(ABC):
    """Connection primitives the client drives.

    Implementations raise only from the ``tether_ws.errors`` taxonomy:

    - ``open``: TetherOpenError (or TetherTimeout / TetherHandshakeError)
    - ``send``: TetherSendError
    - ``receive``: TetherClosed on a clean peer close, TetherTaskError when
      the connection dies abnormally, TetherReceiveError otherwise
    - ``close``: never raises
    """

    @abstractmethod
    async def open(self, endpoint: Endpoint) -> Any:
        """Open a connection and return its handle."""

    @abstractmethod
    async def send(self, handle: Any, message: Message) -> None:
        """Send one message on ``handle``."""

    @abstractmethod
    async def receive(self, handle: Any) -> Message:
        """Wait for the next inbound message on ``handle``."""

    @abstractmethod
    async def close(
        self, handle: Any, code: int = NORMAL_CLOSURE, reason: str = ""
    ) -> None:
        """Close ``handle``."""

    async def aclose(self) -> None:
        """Release resources shared across connections."""
