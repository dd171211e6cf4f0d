"""Normalized WebSocket frames shared by the bridge server and client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from aiohttp import WSMsgType


class BridgeWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class BridgeWsMessage:
    """Normalized WebSocket message payload."""

    type: BridgeWsMessageType
    data: str | dict[str, Any] | None = None


def _map_aiohttp_type(msg_type: Any) -> BridgeWsMessageType | None:
    """Map aiohttp WSMsgType enums to internal message types."""
    if msg_type in {WSMsgType.TEXT, WSMsgType.BINARY}:
        return BridgeWsMessageType.TEXT

    if msg_type in {WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED}:
        return BridgeWsMessageType.CLOSED

    if msg_type is WSMsgType.ERROR:
        return BridgeWsMessageType.ERROR

    return None


def normalize_message(msg: Any) -> BridgeWsMessage | None:
    """Normalize backend-specific frames into BridgeWsMessage.

    Accepts raw ``str``/``bytes`` frames (websockets) and aiohttp
    ``WSMessage`` objects. Binary payloads are decoded as UTF-8 text.
    Returns None for control frames that carry nothing for the bridge.
    """
    if isinstance(msg, bytes):
        return BridgeWsMessage(
            BridgeWsMessageType.TEXT, msg.decode("utf-8", errors="replace")
        )
    if isinstance(msg, str):
        return BridgeWsMessage(BridgeWsMessageType.TEXT, msg)

    msg_type = getattr(msg, "type", None)
    if msg_type is None:
        return None

    normalized_type = _map_aiohttp_type(msg_type)
    if normalized_type is None:
        return None

    data = getattr(msg, "data", None)
    if normalized_type is BridgeWsMessageType.TEXT:
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        return BridgeWsMessage(normalized_type, data)

    return BridgeWsMessage(normalized_type)
