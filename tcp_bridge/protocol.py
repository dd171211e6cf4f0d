"""Envelope helpers for the bridge WebSocket protocol.

Every message in either direction is one JSON object with a ``type`` field.
Outbound envelopes are built here so the session never assembles dicts by
hand, and inbound text is validated into a ``Command``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import DecodeError, FailureKind, LinkError

MSG_INVALID_FORMAT = "invalid message format"
MSG_NOT_CONNECTED = "not connected to target"
MSG_TIMED_OUT = "connection timed out"
MSG_DISCONNECTED = "connection to target closed"

_FAILURE_PREFIX = "connection failed: "

_FAILURE_TEXT: dict[FailureKind, str] = {
    FailureKind.REFUSED: "target not listening on port",
    FailureKind.UNREACHABLE: "target unreachable - check address",
    FailureKind.TIMEOUT: MSG_TIMED_OUT,
}


class CommandType(Enum):
    """Inbound command types understood by a session."""

    CONNECT = "connect"
    SEND = "send"
    DISCONNECT = "disconnect"
    PING = "ping"


@dataclass(frozen=True)
class Command:
    """Decoded inbound command.

    ``type`` is kept as the raw string so unknown commands still decode and
    can be ignored by the caller.
    """

    type: str
    ip: str | None = None
    port: int | None = None
    message: str | None = None


def _parse_port(value: Any) -> int:
    if isinstance(value, bool):
        raise DecodeError("port must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise DecodeError("port must be an integer")
    if not 0 <= value <= 65535:
        raise DecodeError(f"port out of range: {value}")
    return value


def parse_command(raw: str | bytes) -> Command:
    """Decode one inbound text frame into a Command.

    Raises:
        DecodeError: If the payload is not a JSON object with a string
            ``type``, or a known command is missing its fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as err:
        raise DecodeError("payload is not valid JSON") from err

    if not isinstance(data, dict):
        raise DecodeError("payload must be a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str):
        raise DecodeError("type field is required")

    if msg_type == CommandType.CONNECT.value:
        ip = data.get("ip")
        if not isinstance(ip, str) or not ip:
            raise DecodeError("connect requires an ip")
        return Command(type=msg_type, ip=ip, port=_parse_port(data.get("port")))

    if msg_type == CommandType.SEND.value:
        message = data.get("message")
        if not isinstance(message, str):
            raise DecodeError("send requires a message")
        return Command(type=msg_type, message=message)

    return Command(type=msg_type)


def iso_timestamp(now: datetime | None = None) -> str:
    """Return a UTC ISO-8601 timestamp with millisecond precision."""
    moment = now or datetime.now(tz=UTC)
    return (
        moment.astimezone(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def failure_message(error: LinkError) -> str:
    """Render the user-facing text for a device link failure."""
    text = _FAILURE_TEXT.get(error.kind)
    if text is None:
        text = error.detail or "unknown error"
    return _FAILURE_PREFIX + text


def build_connecting(ip: str, port: int) -> dict[str, Any]:
    return {"type": "connecting", "message": f"connecting to {ip}:{port}..."}


def build_connected(ip: str, port: int) -> dict[str, Any]:
    return {
        "type": "connected",
        "message": f"connected to {ip}:{port}",
        "ip": ip,
        "port": port,
    }


def build_sent(message: str, timestamp: str | None = None) -> dict[str, Any]:
    return {
        "type": "sent",
        "message": message,
        "timestamp": timestamp or iso_timestamp(),
    }


def build_received(message: str, timestamp: str | None = None) -> dict[str, Any]:
    return {
        "type": "received",
        "message": message,
        "timestamp": timestamp or iso_timestamp(),
    }


def build_disconnected(message: str = MSG_DISCONNECTED) -> dict[str, Any]:
    return {"type": "disconnected", "message": message}


def build_error(message: str) -> dict[str, Any]:
    """Construct an error envelope; an empty message is rejected."""
    if not message:
        raise ValueError("message is required for error envelopes")
    return {"type": "error", "message": message}


def build_pong(connected: bool) -> dict[str, Any]:
    return {"type": "pong", "connected": bool(connected)}
