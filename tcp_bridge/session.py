"""Per-client bridge session.

A ``BridgeSession`` is created for every WebSocket client. It owns at most one
``DeviceLink``, turns inbound commands into link operations and turns link
events into outbound envelopes. It never talks to the WebSocket directly:
envelopes are handed to the ``emit`` callable supplied by the transport, which
keeps the session testable without any network.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from itertools import count
from typing import Any

from .errors import DecodeError, FailureKind, LinkError, NotConnectedError
from .link import DeviceLink, LinkEvent, LinkEventType
from .protocol import (
    MSG_INVALID_FORMAT,
    MSG_NOT_CONNECTED,
    MSG_TIMED_OUT,
    Command,
    CommandType,
    build_connected,
    build_connecting,
    build_disconnected,
    build_error,
    build_pong,
    build_received,
    build_sent,
    failure_message,
)

_LOGGER = logging.getLogger(__name__)

_SESSION_IDS = count(1)

Envelope = dict[str, Any]


class BridgeSession:
    """Bridge state for one client connection.

    Usage:
        session = BridgeSession(outbound.append)
        session.on_connect("192.168.1.50", 10000)
        session.on_send("LED ON")
        session.on_ping()
        session.on_session_end()
    """

    def __init__(
        self,
        emit: Callable[[Envelope], None],
        *,
        session_id: str | None = None,
        link_factory: Callable[[], DeviceLink] = DeviceLink,
    ) -> None:
        """Initialize session.

        Args:
            emit: Receives every outbound envelope, in order.
            session_id: Identifier used in log lines.
            link_factory: Builds a fresh DeviceLink for each connect.
        """
        self.session_id = session_id or f"s{next(_SESSION_IDS)}"
        self._emit_envelope = emit
        self._link_factory = link_factory

        self.link: DeviceLink | None = None
        # Reserved for automatic reconnects; never scheduled, always cleared
        # together with the link.
        self.reconnect_timer: asyncio.TimerHandle | None = None

        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def is_connected(self) -> bool:
        return self.link is not None and self.link.is_open

    # -------------------------------------------------------------------------
    # Public API: Commands
    # -------------------------------------------------------------------------

    def dispatch(self, command: Command) -> None:
        """Route a decoded command to its handler; unknown types are ignored."""
        if command.type == CommandType.CONNECT.value:
            if command.ip is None or command.port is None:
                self.on_decode_error(DecodeError("connect requires an ip and port"))
                return
            self.on_connect(command.ip, command.port)
        elif command.type == CommandType.SEND.value:
            if command.message is None:
                self.on_decode_error(DecodeError("send requires a message"))
                return
            self.on_send(command.message)
        elif command.type == CommandType.DISCONNECT.value:
            self.on_disconnect()
        elif command.type == CommandType.PING.value:
            self.on_ping()
        else:
            _LOGGER.debug(
                "[%s] Ignoring unknown command type: %s", self.session_id, command.type
            )

    def on_connect(self, ip: str, port: int) -> None:
        """Replace any current link with a new one to ``ip:port``."""
        _LOGGER.info("[%s] Connecting to %s:%s", self.session_id, ip, port)
        self._teardown()

        self._emit(build_connecting(ip, port))

        link = self._link_factory()
        self.link = link
        link.open(ip, port, lambda event: self._on_link_event(link, event))

    def on_send(self, message: str) -> None:
        """Write ``message`` to the device and acknowledge the attempt."""
        link = self.link
        if link is None or not link.is_open:
            self._emit(build_error(MSG_NOT_CONNECTED))
            return

        try:
            link.send(message)
        except NotConnectedError:
            self._emit(build_error(MSG_NOT_CONNECTED))
            return

        _LOGGER.debug("[%s] Sent to device: %r", self.session_id, message)
        self._emit(build_sent(message))

    def on_disconnect(self) -> None:
        """Close the current link, if any."""
        _LOGGER.info("[%s] Disconnect requested", self.session_id)
        self._teardown()

    def on_ping(self) -> None:
        self._emit(build_pong(self.is_connected))

    def on_decode_error(self, err: DecodeError) -> None:
        """Report a malformed inbound payload; the session stays usable."""
        _LOGGER.warning("[%s] Invalid message: %s", self.session_id, err)
        self._emit(build_error(MSG_INVALID_FORMAT))

    def on_session_end(self) -> None:
        """Tear down after the client connection dropped. Idempotent."""
        if self._ended:
            return
        _LOGGER.info("[%s] Session ended", self.session_id)
        self._ended = True
        self._teardown()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _teardown(self) -> None:
        if self.reconnect_timer is not None:
            self.reconnect_timer.cancel()
            self.reconnect_timer = None

        link = self.link
        if link is not None:
            # Close before dropping the reference so the resulting "closed"
            # event is still relayed as "disconnected".
            link.close()
            self.link = None

    def _on_link_event(self, link: DeviceLink, event: LinkEvent) -> None:
        if link is not self.link:
            _LOGGER.debug(
                "[%s] Dropping %s from stale link", self.session_id, event.type.value
            )
            return

        if event.type is LinkEventType.CONNECTED:
            _LOGGER.info(
                "[%s] Connected to %s:%s", self.session_id, link.host, link.port
            )
            self._emit(build_connected(link.host or "", link.port or 0))
        elif event.type is LinkEventType.RECEIVED:
            _LOGGER.debug(
                "[%s] Received from device: %r", self.session_id, event.message
            )
            self._emit(build_received(event.message, event.timestamp))
        elif event.type is LinkEventType.CLOSED:
            _LOGGER.info("[%s] Device connection closed", self.session_id)
            self.link = None
            self._emit(build_disconnected())
        elif event.type is LinkEventType.ERROR:
            error = event.error or LinkError(
                FailureKind.GENERIC, event.message or "unknown error"
            )
            _LOGGER.warning(
                "[%s] Device connection error (%s): %s",
                self.session_id,
                error.kind.value,
                error.detail,
            )
            self.link = None
            self._emit(build_error(failure_message(error)))
        elif event.type is LinkEventType.TIMEOUT:
            _LOGGER.warning("[%s] Device connection timed out", self.session_id)
            self.link = None
            self._emit(build_error(MSG_TIMED_OUT))

    def _emit(self, envelope: Envelope) -> None:
        if self._ended:
            return
        self._emit_envelope(envelope)
