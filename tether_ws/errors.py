"""Client error types for Tether WebSocket connections."""

from __future__ import annotations


class TetherClientError(Exception):
    """Base error for Tether client failures."""


class TetherConfigError(TetherClientError):
    """Client configuration is invalid."""


class TetherConnectionError(TetherClientError):
    """Network connection to the endpoint failed."""


class TetherOpenError(TetherConnectionError):
    """The transport could not establish a connection."""


class TetherTimeout(TetherOpenError):
    """Timeout while opening the connection."""


class TetherHandshakeError(TetherOpenError):
    """WebSocket handshake failed."""


class TetherSendError(TetherConnectionError):
    """An outbound message could not be sent."""


class TetherReceiveError(TetherConnectionError):
    """Receiving the next inbound message failed."""


class TetherTaskError(TetherConnectionError):
    """The underlying connection terminated abnormally."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class TetherClosed(TetherClientError):
    """The peer closed the connection without being asked to."""

    def __init__(self, code: int | None = None, reason: str = "") -> None:
        super().__init__(f"Connection closed by peer (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason
