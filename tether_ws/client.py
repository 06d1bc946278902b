"""Reconnecting WebSocket client.

TetherClient wraps a Transport with:
- A Disconnected / Connecting / Connected state machine
- Automatic reconnect with exponential backoff
- Buffering of outbound messages while disconnected
- Observer notifications for messages, errors and state changes

All state lives on one asyncio event loop. Every state mutation is a
synchronous handler run on that loop, so handlers never interleave;
transport I/O runs in background tasks that report back through the same
handlers.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .backoff import ReconnectPolicy
from .errors import (
    TetherClosed,
    TetherConnectionError,
    TetherOpenError,
    TetherReceiveError,
    TetherSendError,
)
from .observer import ObserverRef
from .protocol import encode_json
from .send_queue import SendQueue
from .transport.base import NORMAL_CLOSURE, Endpoint, Message, Transport
from .transport.ws import WebsocketsTransport

if TYPE_CHECKING:
    from .config import TetherConfig

_LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True)
class _Connection:
    """One open transport handle and the tasks serving it."""

    handle: Any
    outbox: deque[Message] = field(default_factory=deque)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    receive_task: asyncio.Task[None] | None = None
    writer_task: asyncio.Task[None] | None = None


def _wrap(
    err: Exception, error_type: type[TetherConnectionError], message: str
) -> TetherConnectionError:
    """Return ``err`` if it already is ``error_type``, else wrap it."""
    if isinstance(err, error_type):
        return err
    wrapped = error_type(f"{message}: {err}")
    wrapped.__cause__ = err
    return wrapped


class TetherClient:
    """Reconnecting WebSocket client.

    Usage:
        client = TetherClient("wss://example.com/socket")
        client.set_observer(my_observer)
        client.connect()
        client.send("hello")  # queued until connected
        ...
        await client.aclose()
    """

    def __init__(
        self,
        endpoint: Endpoint | str,
        *,
        reconnect_on_failure: bool = True,
        reconnect_on_close: bool | None = None,
        transport: Transport | None = None,
        policy: ReconnectPolicy | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize client.

        Args:
            endpoint: Target endpoint or ws:// / wss:// URL
            reconnect_on_failure: Reconnect after transport errors
            reconnect_on_close: Reconnect after the peer closes the connection
                (default: same as reconnect_on_failure)
            transport: Transport to drive (default: websockets transport)
            policy: Reconnect backoff policy
            loop: Event loop to bind to (default: the loop of the first call)
            name: Label used in log messages (default: endpoint URL)
        """
        self.endpoint = Endpoint.parse(endpoint)
        self.name = name or self.endpoint.url
        self.reconnect_on_failure = reconnect_on_failure
        self.reconnect_on_close = (
            reconnect_on_failure if reconnect_on_close is None else reconnect_on_close
        )

        self._transport = transport if transport is not None else WebsocketsTransport()
        self._owns_transport = transport is None
        self._policy = policy if policy is not None else ReconnectPolicy()
        self._loop = loop

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._connection: _Connection | None = None
        self._open_task: asyncio.Task[None] | None = None
        self._open_token: object | None = None
        self._queue = SendQueue()
        self._observer = ObserverRef(self.name)
        self._closed = False

        # Reconnect
        self._retry_count = 0
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._reconnect_token: object | None = None

        # Serialization
        self._busy = False
        self._deferred = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: TetherConfig,
        *,
        transport: Transport | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> TetherClient:
        """Create a client from a TetherConfig."""
        client = cls(
            config.endpoint(),
            reconnect_on_failure=config.reconnect_on_failure,
            reconnect_on_close=config.reconnect_on_close,
            transport=transport if transport is not None else config.transport(),
            policy=config.policy(),
            loop=loop,
            name=config.name,
        )
        client._owns_transport = transport is None
        return client

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def retry_count(self) -> int:
        """Reconnect attempts made since the last successful open."""
        return self._retry_count

    @property
    def queued_messages(self) -> int:
        """Number of messages waiting for the next connection."""
        return len(self._queue)

    def set_observer(self, observer: Any | None) -> None:
        """Register the observer (held weakly; keep your own reference)."""
        self._observer.set(observer)

    def connect(self) -> None:
        """Start connecting. No-op unless disconnected."""
        self._require_loop()
        self._dispatch(self._connect)

    def disconnect(self) -> None:
        """Close the connection and cancel any pending reconnect."""
        self._dispatch(self._disconnect)

    def send(self, message: Message | bytearray | memoryview) -> None:
        """Send ``message`` now if connected, otherwise queue it.

        Send results arrive through the observer's ``on_error``. A message
        whose send fails is not retried.
        """
        if isinstance(message, (bytearray, memoryview)):
            message = bytes(message)
        if not isinstance(message, (str, bytes)):
            raise TypeError(
                f"message must be str or bytes, not {type(message).__name__}"
            )
        self._dispatch(self._send, message)

    def send_json(self, payload: Any) -> None:
        """Send ``payload`` encoded as a JSON text message."""
        self.send(encode_json(payload))

    async def aclose(self) -> None:
        """Disconnect and wait for every background task to finish."""
        _LOGGER.info("[%s] Closing client", self.name)
        self._closed = True
        self.disconnect()

        # Let deferred handlers and close tasks run before collecting them.
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> TetherClient:
        self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Internal: Serialization
    # -------------------------------------------------------------------------

    def _bind_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                return None
        return self._loop

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        loop = self._bind_loop()
        if loop is None:
            raise RuntimeError("TetherClient needs a running event loop")
        return loop

    def _dispatch(self, func: Callable[..., None], *args: Any) -> None:
        """Run a state handler inside the client's serialization domain.

        Handlers run inline when called on the client's loop with nothing
        else in progress. Calls made from inside a handler (for example by an
        observer) or while earlier calls are still queued go to the back of
        the loop's queue; calls from other threads are handed over with
        ``call_soon_threadsafe``.
        """
        loop = self._bind_loop()
        if loop is None:
            # No loop yet, so no background work exists to race with.
            self._run(func, *args)
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not loop:
            loop.call_soon_threadsafe(self._run, func, *args)
        elif self._busy or self._deferred:
            self._deferred += 1
            loop.call_soon(self._run_deferred, func, *args)
        else:
            self._run(func, *args)

    def _run(self, func: Callable[..., None], *args: Any) -> None:
        self._busy = True
        try:
            func(*args)
        finally:
            self._busy = False

    def _run_deferred(self, func: Callable[..., None], *args: Any) -> None:
        self._deferred -= 1
        self._run(func, *args)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = self._require_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify the observer."""
        if self._state is state:
            return
        _LOGGER.debug("[%s] State: %s → %s", self.name, self._state.value, state.value)
        self._state = state
        self._observer.state_change(state)

    def _connect(self) -> None:
        if self._closed:
            _LOGGER.debug("[%s] Connect aborted: client closed", self.name)
            return
        if self._state is not ConnectionState.DISCONNECTED:
            _LOGGER.debug("[%s] Connect ignored while %s", self.name, self._state.value)
            return

        self._cancel_reconnect()
        self._set_state(ConnectionState.CONNECTING)

        _LOGGER.info(
            "[%s] Connecting to %s (attempt #%d)",
            self.name,
            self.endpoint.url,
            self._retry_count + 1,
        )
        token = object()
        self._open_token = token
        self._open_task = self._spawn(self._open(token))

    def _disconnect(self) -> None:
        if self._connection is not None or self._state is not ConnectionState.DISCONNECTED:
            _LOGGER.info("[%s] Disconnecting", self.name)
        self._teardown()
        self._retry_count = 0

    def _teardown(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Release the connection and settle into DISCONNECTED."""
        self._cancel_reconnect()

        if self._open_task is not None:
            self._open_task.cancel()
            self._open_task = None
        self._open_token = None

        connection = self._connection
        self._connection = None
        if connection is not None:
            current = asyncio.current_task()
            for task in (connection.receive_task, connection.writer_task):
                if task is not None and task is not current:
                    task.cancel()

            # Accepted but unsent messages wait for the next connection.
            if connection.outbox:
                self._queue.requeue(connection.outbox)
                connection.outbox.clear()

            self._spawn(self._close_handle(connection.handle, code, reason))

        self._set_state(ConnectionState.DISCONNECTED)

    def _fail(self, error: Exception) -> None:
        """Report ``error``, tear down and schedule a reconnect if enabled."""
        _LOGGER.warning("[%s] Connection failed: %s", self.name, error)
        self._observer.error(error)
        self._teardown()
        if self.reconnect_on_failure:
            self._schedule_reconnect()

    # -------------------------------------------------------------------------
    # Internal: Transport Events
    # -------------------------------------------------------------------------

    def _handle_opened(self, token: object, handle: Any) -> None:
        if token is not self._open_token or self._state is not ConnectionState.CONNECTING:
            _LOGGER.debug("[%s] Closing connection opened after teardown", self.name)
            self._spawn(self._close_handle(handle, NORMAL_CLOSURE, ""))
            return

        self._open_token = None
        self._open_task = None

        connection = _Connection(handle=handle)
        self._connection = connection
        self._retry_count = 0
        self._set_state(ConnectionState.CONNECTED)
        _LOGGER.info("[%s] Connected", self.name)

        connection.receive_task = self._spawn(self._receive_loop(connection))
        connection.writer_task = self._spawn(self._write_loop(connection))
        self._flush(connection)

    def _handle_open_failed(self, token: object, error: TetherConnectionError) -> None:
        if token is not self._open_token:
            _LOGGER.debug("[%s] Ignoring stale open failure: %s", self.name, error)
            return
        self._open_token = None
        self._open_task = None
        self._fail(error)

    def _handle_message(self, connection: _Connection, message: Message) -> None:
        if connection is not self._connection:
            _LOGGER.debug("[%s] Dropping message from stale connection", self.name)
            return
        self._observer.message(message)

    def _handle_sent(
        self, connection: _Connection, error: TetherConnectionError | None
    ) -> None:
        if connection is not self._connection:
            return
        if error is None:
            self._observer.error(None)
            return
        self._fail(error)

    def _handle_closed(self, connection: _Connection, closed: TetherClosed) -> None:
        if connection is not self._connection:
            return
        _LOGGER.info(
            "[%s] Connection closed by peer (code=%s, reason=%r)",
            self.name,
            closed.code,
            closed.reason,
        )
        self._teardown()
        if self.reconnect_on_close:
            self._schedule_reconnect()

    def _handle_failure(
        self, connection: _Connection, error: TetherConnectionError
    ) -> None:
        if connection is not self._connection:
            _LOGGER.debug("[%s] Ignoring stale failure: %s", self.name, error)
            return
        self._fail(error)

    # -------------------------------------------------------------------------
    # Internal: Send Queue
    # -------------------------------------------------------------------------

    def _send(self, message: Message) -> None:
        connection = self._connection
        if self._state is ConnectionState.CONNECTED and connection is not None:
            connection.outbox.append(message)
            connection.wakeup.set()
            return
        self._queue.append(message)
        _LOGGER.debug("[%s] Queued message (%d pending)", self.name, len(self._queue))

    def _flush(self, connection: _Connection) -> None:
        """Hand every queued message to the writer, oldest first."""
        messages = self._queue.drain()
        if not messages:
            return
        _LOGGER.debug("[%s] Flushing %d queued messages", self.name, len(messages))
        connection.outbox.extend(messages)
        connection.wakeup.set()

    # -------------------------------------------------------------------------
    # Internal: Reconnect
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        """Start the backoff timer for the next connect attempt."""
        if self._closed:
            return
        loop = self._require_loop()

        self._cancel_reconnect()
        delay = self._policy.delay(self._retry_count)
        token = object()
        self._reconnect_token = token
        self._reconnect_timer = loop.call_later(
            delay, self._dispatch, self._reconnect_fired, token
        )
        _LOGGER.info(
            "[%s] Reconnecting in %.2fs (attempt %d)",
            self.name,
            delay,
            self._retry_count + 1,
        )

    def _reconnect_fired(self, token: object) -> None:
        if token is not self._reconnect_token:
            _LOGGER.debug("[%s] Reconnect cancelled", self.name)
            return
        self._reconnect_token = None
        self._reconnect_timer = None
        self._retry_count += 1
        self._connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        self._reconnect_token = None

    # -------------------------------------------------------------------------
    # Internal: Transport I/O
    # -------------------------------------------------------------------------

    async def _open(self, token: object) -> None:
        try:
            handle = await self._transport.open(self.endpoint)
        except asyncio.CancelledError:
            raise
        except Exception as err:
            error = _wrap(err, TetherOpenError, "Transport open failed")
            self._dispatch(self._handle_open_failed, token, error)
            return
        self._dispatch(self._handle_opened, token, handle)

    async def _receive_loop(self, connection: _Connection) -> None:
        """Receive messages one at a time until the connection ends."""
        while True:
            try:
                message = await self._transport.receive(connection.handle)
            except asyncio.CancelledError:
                raise
            except TetherClosed as closed:
                self._dispatch(self._handle_closed, connection, closed)
                return
            except TetherConnectionError as err:
                self._dispatch(self._handle_failure, connection, err)
                return
            except Exception as err:
                error = _wrap(err, TetherReceiveError, "Transport receive failed")
                self._dispatch(self._handle_failure, connection, error)
                return
            self._dispatch(self._handle_message, connection, message)

    async def _write_loop(self, connection: _Connection) -> None:
        """Send accepted messages in order, one at a time."""
        while True:
            if not connection.outbox:
                connection.wakeup.clear()
                await connection.wakeup.wait()
                continue

            message = connection.outbox.popleft()
            try:
                await self._transport.send(connection.handle, message)
            except asyncio.CancelledError:
                raise
            except Exception as err:
                error = _wrap(err, TetherSendError, "Transport send failed")
                _LOGGER.warning("[%s] Send failed, dropping message: %s", self.name, error)
                self._dispatch(self._handle_sent, connection, error)
                return
            self._dispatch(self._handle_sent, connection, None)

    async def _close_handle(self, handle: Any, code: int, reason: str) -> None:
        try:
            await self._transport.close(handle, code, reason)
        except Exception as err:
            _LOGGER.warning("[%s] Transport close failed: %s", self.name, err)
