"""Pytest configuration and fixtures for tether_ws tests."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from typing import Any

import pytest

from tether_ws import ConnectionState, ReconnectPolicy, TetherClient, TetherObserver
from tether_ws.transport.base import NORMAL_CLOSURE, Endpoint, Message, Transport

ENDPOINT = "ws://192.168.1.100:8080/ws"


class FakeHandle:
    """In-memory connection handle fed by the test."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[Message | Exception] = asyncio.Queue()

    def feed(self, message: Message) -> None:
        """Deliver an inbound message."""
        self.inbox.put_nowait(message)

    def fail(self, error: Exception) -> None:
        """Make the pending receive raise ``error``."""
        self.inbox.put_nowait(error)


class FakeTransport(Transport):
    """Scripted transport recording every call.

    Attributes:
        open_results: Handles or exceptions returned by successive opens
            (a fresh FakeHandle when empty).
        open_gate: When set, open() waits for the event before returning.
        send_gate: When set, send() waits for the event before sending.
        send_errors: Messages whose send raises the mapped exception.
    """

    def __init__(self) -> None:
        self.opened: list[Endpoint] = []
        self.handles: list[FakeHandle] = []
        self.sent: list[Message] = []
        self.sent_on: list[tuple[FakeHandle, Message]] = []
        self.closed: list[tuple[FakeHandle, int, str]] = []
        self.open_results: deque[FakeHandle | Exception] = deque()
        self.open_gate: asyncio.Event | None = None
        self.send_gate: asyncio.Event | None = None
        self.send_errors: dict[Message, Exception] = {}
        self.aclosed = False

    async def open(self, endpoint: Endpoint) -> FakeHandle:
        self.opened.append(endpoint)
        if self.open_gate is not None:
            await self.open_gate.wait()
        result = self.open_results.popleft() if self.open_results else FakeHandle()
        if isinstance(result, Exception):
            raise result
        self.handles.append(result)
        return result

    async def send(self, handle: FakeHandle, message: Message) -> None:
        if self.send_gate is not None:
            await self.send_gate.wait()
        if message in self.send_errors:
            raise self.send_errors[message]
        self.sent.append(message)
        self.sent_on.append((handle, message))

    async def receive(self, handle: FakeHandle) -> Message:
        item = await handle.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(
        self, handle: FakeHandle, code: int = NORMAL_CLOSURE, reason: str = ""
    ) -> None:
        self.closed.append((handle, code, reason))

    async def aclose(self) -> None:
        self.aclosed = True


class RecordingObserver(TetherObserver):
    """Observer recording notifications in arrival order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_message(self, message: Message) -> None:
        self.events.append(("message", message))

    def on_error(self, error: Exception | None) -> None:
        self.events.append(("error", error))

    def on_state_change(self, state: ConnectionState) -> None:
        self.events.append(("state", state))

    @property
    def states(self) -> list[ConnectionState]:
        return [value for kind, value in self.events if kind == "state"]

    @property
    def errors(self) -> list[Exception | None]:
        return [value for kind, value in self.events if kind == "error"]

    @property
    def failures(self) -> list[Exception]:
        return [value for kind, value in self.events if kind == "error" and value]

    @property
    def messages(self) -> list[Message]:
        return [value for kind, value in self.events if kind == "message"]


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds, failing the test after ``timeout``."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


FAST_POLICY = ReconnectPolicy(base_delay=0.005, max_delay=0.04)


@pytest.fixture
def transport() -> FakeTransport:
    """Create a scripted fake transport."""
    return FakeTransport()


@pytest.fixture
def observer() -> RecordingObserver:
    """Create a recording observer."""
    return RecordingObserver()


@pytest.fixture
def make_client(
    transport: FakeTransport, observer: RecordingObserver
) -> Callable[..., TetherClient]:
    """Factory for clients wired to the fake transport and recording observer."""

    def _make(**kwargs: Any) -> TetherClient:
        kwargs.setdefault("transport", transport)
        kwargs.setdefault("policy", FAST_POLICY)
        client = TetherClient(ENDPOINT, **kwargs)
        client.set_observer(observer)
        return client

    return _make
