"""Pytest configuration and fixtures for tcp_bridge tests."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from tcp_bridge import link as link_module
from tcp_bridge.errors import NotConnectedError
from tcp_bridge.link import LinkEvent, LinkEventType, LinkState


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


class DeviceServer:
    """Minimal line device: records what it receives, can push data."""

    def __init__(self) -> None:
        self.received = bytearray()
        self.writers: list[asyncio.StreamWriter] = []
        self.disconnects = 0
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    @property
    def connections(self) -> int:
        return len(self.writers)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        for writer in self.writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def push(self, data: bytes, index: int = -1) -> None:
        writer = self.writers[index]
        writer.write(data)
        await writer.drain()

    async def hang_up(self, index: int = -1) -> None:
        writer = self.writers[index]
        writer.close()
        await writer.wait_closed()

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.writers.append(writer)
        try:
            while data := await reader.read(1024):
                self.received.extend(data)
        except ConnectionError:
            pass
        finally:
            self.disconnects += 1


@pytest.fixture
async def device() -> AsyncIterator[DeviceServer]:
    """Start a local TCP device on an ephemeral port."""
    server = DeviceServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def closed_port() -> int:
    """Return a localhost port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def short_timeout(monkeypatch: pytest.MonkeyPatch) -> float:
    """Shrink the device link timeout so timeout paths run quickly."""
    monkeypatch.setattr(link_module, "LINK_TIMEOUT", 0.2)
    return 0.2


class FakeLink:
    """In-memory stand-in for DeviceLink driven explicitly by tests."""

    live = 0
    max_live = 0

    def __init__(self) -> None:
        self.host: str | None = None
        self.port: int | None = None
        self.state = LinkState.IDLE
        self.sent: list[str] = []
        self.close_calls = 0
        self._on_event: Callable[[LinkEvent], None] | None = None

    @classmethod
    def reset_counters(cls) -> None:
        cls.live = 0
        cls.max_live = 0

    @property
    def is_open(self) -> bool:
        return self.state is LinkState.OPEN

    def open(self, host: str, port: int, on_event: Callable[[LinkEvent], None]) -> None:
        self.host = host
        self.port = port
        self._on_event = on_event
        self.state = LinkState.CONNECTING
        FakeLink.live += 1
        FakeLink.max_live = max(FakeLink.max_live, FakeLink.live)

    def send(self, message: str) -> None:
        if self.state is not LinkState.OPEN:
            raise NotConnectedError("link is not open")
        self.sent.append(message)

    def close(self) -> None:
        self.close_calls += 1
        if self.state in (LinkState.CONNECTING, LinkState.OPEN):
            self._terminate(LinkState.CLOSED, LinkEventType.CLOSED)

    def fire(self, event_type: LinkEventType, **kwargs: Any) -> None:
        """Simulate the underlying connection producing ``event_type``."""
        if event_type is LinkEventType.CONNECTED:
            self.state = LinkState.OPEN
        elif event_type is LinkEventType.CLOSED:
            self._terminate(LinkState.CLOSED, event_type, **kwargs)
            return
        elif event_type is LinkEventType.ERROR:
            self._terminate(LinkState.ERRORED, event_type, **kwargs)
            return
        elif event_type is LinkEventType.TIMEOUT:
            self._terminate(LinkState.TIMED_OUT, event_type, **kwargs)
            return
        assert self._on_event is not None
        self._on_event(LinkEvent(event_type, **kwargs))

    def _terminate(
        self, state: LinkState, event_type: LinkEventType, **kwargs: Any
    ) -> None:
        self.state = state
        FakeLink.live -= 1
        assert self._on_event is not None
        self._on_event(LinkEvent(event_type, **kwargs))


@pytest.fixture
def fake_links() -> list[FakeLink]:
    """Collect every FakeLink a session creates."""
    FakeLink.reset_counters()
    return []


@pytest.fixture
def link_factory(fake_links: list[FakeLink]) -> Callable[[], FakeLink]:
    def factory() -> FakeLink:
        link = FakeLink()
        fake_links.append(link)
        return link

    return factory
