"""End-to-end tests against a local websockets server."""

from __future__ import annotations

import pytest
from websockets.asyncio.server import serve

from tether_ws import ConnectionState, TetherClient

from .conftest import FAST_POLICY, RecordingObserver, wait_until


async def echo(websocket) -> None:
    async for message in websocket:
        await websocket.send(message)


@pytest.fixture
async def echo_url():
    """Run an echo server on a free local port."""
    async with serve(echo, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/"


class TestEcho:
    """Round trips through a real WebSocket connection."""

    async def test_queued_messages_echoed(self, echo_url):
        """Test messages queued before connecting are delivered and echoed."""
        observer = RecordingObserver()
        client = TetherClient(echo_url, policy=FAST_POLICY)
        client.set_observer(observer)

        client.send("hello")
        client.send(b"\x00\x01")
        client.send_json({"op": "ping"})
        client.connect()
        await wait_until(lambda: len(observer.messages) == 3, timeout=5.0)

        assert observer.messages == ["hello", b"\x00\x01", '{"op":"ping"}']
        assert observer.errors.count(None) == 3
        await client.aclose()
        assert client.state is ConnectionState.DISCONNECTED

    async def test_context_manager(self, echo_url):
        """Test async with connects and closes the client."""
        observer = RecordingObserver()

        async with TetherClient(echo_url) as client:
            client.set_observer(observer)
            await wait_until(lambda: client.is_connected, timeout=5.0)
            client.send("inside")
            await wait_until(lambda: observer.messages == ["inside"], timeout=5.0)

        assert client.state is ConnectionState.DISCONNECTED


class TestPeerClose:
    """Behaviour when the server ends the connection."""

    async def test_reconnects_after_server_close(self):
        """Test a clean close from the server is followed by a reconnect."""
        connections = 0

        async def close_first(websocket) -> None:
            nonlocal connections
            connections += 1
            if connections == 1:
                await websocket.close(1001, "restarting")
                return
            await echo(websocket)

        async with serve(close_first, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            observer = RecordingObserver()
            client = TetherClient(f"ws://127.0.0.1:{port}/", policy=FAST_POLICY)
            client.set_observer(observer)

            client.connect()
            await wait_until(lambda: connections == 2 and client.is_connected, timeout=5.0)
            client.send("back again")
            await wait_until(lambda: observer.messages == ["back again"], timeout=5.0)

            assert observer.failures == []
            assert observer.states[:3] == [
                ConnectionState.CONNECTING,
                ConnectionState.CONNECTED,
                ConnectionState.DISCONNECTED,
            ]
            await client.aclose()

    async def test_refused_connection_reports_error(self):
        """Test an unreachable server surfaces an open error and keeps retrying."""
        async with serve(echo, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
        # Server is gone; the port now refuses connections.

        observer = RecordingObserver()
        client = TetherClient(f"ws://127.0.0.1:{port}/", policy=FAST_POLICY)
        client.set_observer(observer)

        client.connect()
        await wait_until(lambda: len(observer.failures) >= 2, timeout=5.0)

        assert client.retry_count >= 1
        await client.aclose()
        assert client.state is ConnectionState.DISCONNECTED
