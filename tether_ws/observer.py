"""Observer contract for Tether client notifications.

Observers receive three notifications, always from the client's event loop
and never concurrently:

- ``on_message(message)``: an inbound message arrived.
- ``on_error(error)``: a transport error, a failed send, or ``None`` when a
  send completed successfully.
- ``on_state_change(state)``: the connection state changed.

The client holds its observer through a weak reference. Keep your own
reference to the observer for as long as you want notifications.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .client import ConnectionState
    from .transport.base import Message

_LOGGER = logging.getLogger(__name__)


class TetherObserver:
    """Base observer; override the notifications you care about."""

    def on_message(self, message: Message) -> None:
        """Handle an inbound message."""

    def on_error(self, error: Exception | None) -> None:
        """Handle a failure, or a successful send when ``error`` is None."""

    def on_state_change(self, state: ConnectionState) -> None:
        """Handle a connection state change."""


class CallbackObserver(TetherObserver):
    """Observer that forwards notifications to plain callables.

    Usage:
        observer = CallbackObserver(on_message=print)
        client.set_observer(observer)  # keep `observer` alive yourself
    """

    def __init__(
        self,
        *,
        on_message: Callable[[Message], None] | None = None,
        on_error: Callable[[Exception | None], None] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
    ) -> None:
        self._on_message = on_message
        self._on_error = on_error
        self._on_state_change = on_state_change

    def on_message(self, message: Message) -> None:
        if self._on_message:
            self._on_message(message)

    def on_error(self, error: Exception | None) -> None:
        if self._on_error:
            self._on_error(error)

    def on_state_change(self, state: ConnectionState) -> None:
        if self._on_state_change:
            self._on_state_change(state)


class ObserverRef:
    """Non-owning reference to an observer with safe delivery.

    Delivery to a collected observer, or to an observer lacking the
    notification method, is a silent no-op. Exceptions raised by the
    observer are logged and swallowed so they cannot break the client.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._ref: weakref.ReferenceType[Any] | None = None

    def set(self, observer: Any | None) -> None:
        self._ref = weakref.ref(observer) if observer is not None else None

    def get(self) -> Any | None:
        if self._ref is None:
            return None
        return self._ref()

    def message(self, message: Message) -> None:
        self._deliver("on_message", message)

    def error(self, error: Exception | None) -> None:
        self._deliver("on_error", error)

    def state_change(self, state: ConnectionState) -> None:
        self._deliver("on_state_change", state)

    def _deliver(self, method: str, arg: Any) -> None:
        observer = self.get()
        if observer is None:
            return
        callback = getattr(observer, method, None)
        if callback is None:
            return
        try:
            callback(arg)
        except Exception as err:
            _LOGGER.exception("[%s] Observer %s error: %s", self._name, method, err)
