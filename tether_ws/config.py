"""Client configuration and YAML loading.

A configuration file holds either a bare mapping or one nested under a
``tether`` key:

    tether:
      url: wss://example.com/socket
      headers:
        Authorization: Bearer secret
      reconnect_on_failure: true
      base_delay: 0.25
      max_delay: 16
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .backoff import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY, ReconnectPolicy
from .errors import TetherConfigError
from .transport.base import Endpoint
from .transport.ws import WebsocketsTransport

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TetherConfig:
    """Settings for one TetherClient.

    Attributes:
        url: ws:// or wss:// endpoint URL.
        headers: Extra handshake headers.
        subprotocols: Offered WebSocket subprotocols.
        reconnect_on_failure: Reconnect after transport errors.
        reconnect_on_close: Reconnect after the peer closes the connection
            (None follows reconnect_on_failure).
        base_delay: First reconnect delay (seconds).
        max_delay: Largest reconnect delay (seconds).
        jitter: Fraction of each delay to randomise.
        open_timeout: Connection timeout (seconds).
        ping_interval: Keepalive ping interval (seconds, None to disable).
        close_timeout: Closing handshake timeout (seconds).
        name: Label used in log messages (defaults to the URL).
    """

    url: str
    headers: dict[str, str] = field(default_factory=lambda: {})
    subprotocols: tuple[str, ...] = ()
    reconnect_on_failure: bool = True
    reconnect_on_close: bool | None = None
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = 0.0
    open_timeout: float = 15.0
    ping_interval: float | None = 20
    close_timeout: float = 5.0
    name: str | None = None

    def __post_init__(self) -> None:
        if self.reconnect_on_close is None:
            object.__setattr__(self, "reconnect_on_close", self.reconnect_on_failure)
        # Both raise TetherConfigError / ValueError on bad values.
        self.endpoint()
        try:
            self.policy()
        except ValueError as err:
            raise TetherConfigError(str(err)) from err
        if self.open_timeout <= 0:
            raise TetherConfigError("open_timeout must be positive")
        if self.close_timeout <= 0:
            raise TetherConfigError("close_timeout must be positive")
        if self.ping_interval is not None and self.ping_interval <= 0:
            raise TetherConfigError("ping_interval must be positive or null")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TetherConfig:
        """Build a configuration from a plain mapping."""
        if "tether" in data and isinstance(data["tether"], dict):
            data = data["tether"]

        if not data.get("url"):
            raise TetherConfigError("Missing required setting: url")

        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                _LOGGER.warning("Ignoring unknown setting: %s", key)

        try:
            ping_interval = data.get("ping_interval", 20)
            return cls(
                url=str(data["url"]),
                headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
                subprotocols=tuple(data.get("subprotocols") or ()),
                reconnect_on_failure=_flag(data, "reconnect_on_failure", True),
                reconnect_on_close=_flag(data, "reconnect_on_close", None),
                base_delay=float(data.get("base_delay", DEFAULT_BASE_DELAY)),
                max_delay=float(data.get("max_delay", DEFAULT_MAX_DELAY)),
                jitter=float(data.get("jitter", 0.0)),
                open_timeout=float(data.get("open_timeout", 15.0)),
                ping_interval=None if ping_interval is None else float(ping_interval),
                close_timeout=float(data.get("close_timeout", 5.0)),
                name=data.get("name"),
            )
        except (TypeError, ValueError, AttributeError) as err:
            raise TetherConfigError(f"Invalid setting: {err}") from err

    def endpoint(self) -> Endpoint:
        return Endpoint(
            url=self.url,
            headers=dict(self.headers),
            subprotocols=self.subprotocols,
        )

    def policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )

    def transport(self) -> WebsocketsTransport:
        """Build the default websockets transport for these settings."""
        return WebsocketsTransport(
            ping_interval=self.ping_interval,
            open_timeout=self.open_timeout,
            close_timeout=self.close_timeout,
        )


def _flag(data: dict[str, Any], key: str, default: bool | None) -> bool | None:
    """Read a boolean setting, rejecting strings such as "false"."""
    value = data.get(key, default)
    if value is None and default is None:
        return None
    if not isinstance(value, bool):
        raise TetherConfigError(f"Invalid setting: {key} must be true or false")
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file."""
    if not path.exists():
        raise TetherConfigError(f"File not found: {path}")
    with path.open() as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise TetherConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise TetherConfigError(f"Expected a mapping in {path}")
    return data


def load_config(path: Path | str) -> TetherConfig:
    """Load a TetherConfig from a YAML file.

    Raises:
        TetherConfigError: If the file is missing or holds invalid settings.
    """
    return TetherConfig.from_dict(_load_yaml(Path(path)))
