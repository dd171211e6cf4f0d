"""Managed outbound TCP connection to a device.

A ``DeviceLink`` owns one asyncio stream connection and reports everything
that happens to it through a single callback. Exactly one terminal event
(``closed``, ``error`` or ``timeout``) is delivered per instance, always after
the ``received`` events that preceded it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .errors import (
    BridgeError,
    LinkError,
    NotConnectedError,
    classify_connect_error,
    classify_os_error,
)
from .protocol import iso_timestamp

_LOGGER = logging.getLogger(__name__)

# Connect and idle timeout (seconds). Fixed by the device protocol.
LINK_TIMEOUT = 10.0

LINE_TERMINATOR = b"\r"
READ_SIZE = 4096

_TRAILING_JUNK = re.compile(r"[\s\x00-\x1f\x7f]+$")


class LinkState(Enum):
    """Lifecycle states of a device link."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


_TERMINAL_STATES = frozenset(
    {LinkState.CLOSED, LinkState.ERRORED, LinkState.TIMED_OUT}
)


class LinkEventType(Enum):
    """Events reported by a device link."""

    CONNECTED = "connected"
    RECEIVED = "received"
    CLOSED = "closed"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class LinkEvent:
    """Single event emitted by a device link."""

    type: LinkEventType
    message: str = ""
    timestamp: str | None = None
    error: LinkError | None = None


LinkEventCallback = Callable[[LinkEvent], None]


def decode_chunk(data: bytes) -> str:
    """Decode one read chunk and strip trailing whitespace/control bytes."""
    text = data.decode("utf-8", errors="replace")
    return _TRAILING_JUNK.sub("", text)


class DeviceLink:
    """One attempt/instance of a TCP connection to a device.

    Usage:
        link = DeviceLink()
        link.open("192.168.1.50", 10000, on_event)
        ...
        link.send("STATUS")
        link.close()
    """

    def __init__(self) -> None:
        self.host: str | None = None
        self.port: int | None = None
        self._state = LinkState.IDLE
        self._on_event: LinkEventCallback | None = None
        self._task: asyncio.Task[None] | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is LinkState.OPEN

    @property
    def is_terminal(self) -> bool:
        return self._state in _TERMINAL_STATES

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def open(self, host: str, port: int, on_event: LinkEventCallback) -> None:
        """Start connecting to ``host:port`` without blocking.

        Outcomes are delivered later through ``on_event``. Must be called from
        a running event loop, and only once per instance.
        """
        if self._state is not LinkState.IDLE:
            raise BridgeError(f"link already used (state={self._state.value})")

        self.host = host
        self.port = port
        self._on_event = on_event
        self._loop = asyncio.get_running_loop()
        self._state = LinkState.CONNECTING
        self._arm_timer()
        self._task = self._loop.create_task(self._run(host, port))
        _LOGGER.debug("Link %s:%s connecting", host, port)

    def send(self, message: str | bytes) -> None:
        """Write ``message`` followed by a CR terminator.

        The write is fire-and-forget; failures surface later as an ``error``
        event rather than from this call.

        Raises:
            NotConnectedError: If the link is not open.
        """
        if self._state is not LinkState.OPEN or self._writer is None:
            raise NotConnectedError("link is not open")

        payload = message.encode("utf-8") if isinstance(message, str) else message
        self._writer.write(payload + LINE_TERMINATOR)
        self._arm_timer()

    def close(self) -> None:
        """Abort the connection. Idempotent.

        Emits ``closed`` only if the link was connecting or open.
        """
        if self._state is LinkState.IDLE:
            self._state = LinkState.CLOSED
            return
        self._finish(LinkState.CLOSED, LinkEventType.CLOSED)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _run(self, host: str, port: int) -> None:
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except (OSError, ValueError) as err:
            self._finish(
                LinkState.ERRORED,
                LinkEventType.ERROR,
                error=classify_connect_error(err),
            )
            return

        if self._state is not LinkState.CONNECTING:
            writer.transport.abort()
            return

        self._writer = writer
        self._state = LinkState.OPEN
        self._arm_timer()
        _LOGGER.debug("Link %s:%s open", self.host, self.port)
        self._emit(LinkEvent(LinkEventType.CONNECTED))

        try:
            while self._state is LinkState.OPEN:
                data = await reader.read(READ_SIZE)
                if not data:
                    break
                self._arm_timer()
                self._emit(
                    LinkEvent(
                        LinkEventType.RECEIVED,
                        message=decode_chunk(data),
                        timestamp=iso_timestamp(),
                    )
                )
        except OSError as err:
            self._finish(
                LinkState.ERRORED, LinkEventType.ERROR, error=classify_os_error(err)
            )
            return

        self._finish(LinkState.CLOSED, LinkEventType.CLOSED)

    def _finish(
        self,
        state: LinkState,
        event_type: LinkEventType,
        *,
        error: LinkError | None = None,
    ) -> None:
        """Move to a terminal state and emit the terminal event once."""
        if self._state in _TERMINAL_STATES:
            return

        self._state = state
        self._cancel_timer()

        if self._writer is not None:
            self._writer.transport.abort()
            self._writer = None

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        _LOGGER.debug(
            "Link %s:%s terminated: %s", self.host, self.port, event_type.value
        )
        self._emit(LinkEvent(event_type, error=error))

    def _on_timeout(self) -> None:
        self._timer = None
        _LOGGER.debug("Link %s:%s timed out", self.host, self.port)
        self._finish(LinkState.TIMED_OUT, LinkEventType.TIMEOUT)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        if self._loop is not None:
            self._timer = self._loop.call_later(LINK_TIMEOUT, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, event: LinkEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception as err:
            _LOGGER.exception(
                "Link %s:%s event callback error: %s", self.host, self.port, err
            )
