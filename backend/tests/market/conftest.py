"""Fixtures for price stream tests.

Transport tests talk to a real WebSocket server on 127.0.0.1 with an
ephemeral port, so connect, drop and reconnect go through the actual
websockets stack.
"""

import asyncio
import base64
import hashlib
import json
import socket

import pytest
import pytest_asyncio
import websockets

from pricefeed.market.config import ClientSettings


def ticker_message(symbol: str = "BTCUSDT", price: str = "100.00", **overrides) -> str:
    """Build a Binance 24hr ticker payload. Numeric fields are strings, as on the wire."""
    payload = {
        "e": "24hrTicker",
        "s": symbol,
        "c": price,
        "p": "1.50",
        "P": "1.52",
        "h": "105.00",
        "l": "95.00",
        "v": "1234.5",
    }
    payload.update(overrides)
    return json.dumps(payload)


class FeedServer:
    """Local ticker feed. Tests push frames to, or drop, the latest connection."""

    def __init__(self) -> None:
        self.url = ""
        self.connections: list = []
        self.paths: list[str] = []
        self._changed = asyncio.Event()

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    async def handler(self, ws) -> None:
        request = getattr(ws, "request", None)
        self.paths.append(request.path if request is not None else ws.path)
        self.connections.append(ws)
        self._changed.set()
        await ws.wait_closed()

    async def wait_for_connections(self, count: int, timeout: float = 3.0) -> None:
        async def _wait() -> None:
            while self.connection_count < count:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)

    async def send(self, frame: str | bytes) -> None:
        await self.connections[-1].send(frame)

    async def drop(self) -> None:
        await self.connections[-1].close()


@pytest_asyncio.fixture
async def feed_server():
    """A running FeedServer; base URL is exposed as ``feed_server.url``."""
    feed = FeedServer()
    async with websockets.serve(feed.handler, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        feed.url = f"ws://127.0.0.1:{port}/ws"
        yield feed


@pytest.fixture
def unused_url() -> str:
    """Base URL on a port nothing listens on, so every connect is refused."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"ws://127.0.0.1:{port}/ws"


def fast_settings(base_url: str, **overrides) -> ClientSettings:
    """Settings with millisecond backoff so retry tests finish quickly."""
    values = {
        "ws_base_url": base_url,
        "backoff_base": 0.01,
        "backoff_factor": 1.5,
        "backoff_max": 0.05,
        "backoff_jitter": 0.01,
        "open_timeout": 2.0,
        "close_timeout": 1.0,
    }
    values.update(overrides)
    return ClientSettings(**values)


@pytest.fixture
def make_settings():
    """Factory fixture for fast_settings()."""
    return fast_settings


@pytest.fixture
def make_ticker():
    """Factory fixture for ticker_message()."""
    return ticker_message


WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


class SlowCloseFeed:
    """Bare TCP feed that accepts the WebSocket upgrade and never answers a close frame.

    A client closing its socket waits out its close timeout, so superseded
    connections linger. Tracks how many sockets are open at the same time.
    """

    def __init__(self) -> None:
        self.url = ""
        self.accepted = 0
        self.open = 0
        self.max_open = 0

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request = await reader.readuntil(b"\r\n\r\n")
        except (asyncio.IncompleteReadError, ConnectionError):
            writer.close()
            return
        key = ""
        for line in request.decode("latin-1").split("\r\n"):
            name, _, value = line.partition(":")
            if name.strip().lower() == "sec-websocket-key":
                key = value.strip()
        accept = base64.b64encode(hashlib.sha1((key + WS_GUID).encode()).digest()).decode()
        writer.write(
            (
                "HTTP/1.1 101 Switching Protocols\r\n"
                "Upgrade: websocket\r\n"
                "Connection: Upgrade\r\n"
                f"Sec-WebSocket-Accept: {accept}\r\n\r\n"
            ).encode()
        )
        await writer.drain()

        self.accepted += 1
        self.open += 1
        self.max_open = max(self.max_open, self.open)
        try:
            while await reader.read(4096):
                pass  # Swallow everything, close frames included
        except ConnectionError:
            pass
        finally:
            self.open -= 1
            writer.close()


@pytest_asyncio.fixture
async def slow_close_feed():
    """A running SlowCloseFeed; base URL is exposed as ``slow_close_feed.url``."""
    feed = SlowCloseFeed()
    server = await asyncio.start_server(feed.handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    feed.url = f"ws://127.0.0.1:{port}/ws"
    try:
        yield feed
    finally:
        server.close()
        await server.wait_closed()
