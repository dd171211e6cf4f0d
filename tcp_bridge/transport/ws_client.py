"""Python client for the bridge WebSocket protocol.

Drives a bridge the same way the companion page does: send JSON commands,
iterate over the envelopes that come back.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    BridgeConnectionError,
    BridgeError,
    BridgeHandshakeError,
    BridgeTimeout,
)
from ..protocol import CommandType
from .messages import BridgeWsMessage, BridgeWsMessageType, normalize_message

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class BridgeWsClient:
    """Wrapper around the websockets library for talking to a bridge."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    async def connect(
        self,
        host: str,
        port: int,
        *,
        path: str = "/ws",
        ping_interval: int | None = 20,
        timeout: float = 15.0,
        verify: bool = True,
    ) -> bool | None:
        """Connect to the bridge websocket.

        With ``verify`` set, a ping is sent straight after the upgrade and the
        endpoint must answer with a bridge ``pong`` envelope; anything else is
        treated as a failed handshake and the connection is dropped.

        Returns:
            The ``connected`` flag from the verifying pong, or None when
            verification is skipped.

        Raises:
            BridgeTimeout: If the upgrade does not finish within ``timeout``.
            BridgeHandshakeError: If the upgrade is rejected or the endpoint
                does not speak the bridge protocol.
            BridgeConnectionError: If the TCP connection fails.
        """
        url = f"ws://{host}:{port}{path}"
        try:
            self._ws = await ws_connect(
                url,
                ping_interval=ping_interval,
                open_timeout=timeout,
                close_timeout=5,
            )
        except TimeoutError as err:
            raise BridgeTimeout(f"Timed out connecting to {url}") from err
        except (InvalidHandshake, InvalidURI) as err:
            raise BridgeHandshakeError(f"WebSocket upgrade to {url} failed") from err
        except (OSError, WebSocketException) as err:
            raise BridgeConnectionError(f"Could not connect to {url}") from err

        if not verify:
            return None
        return await self._verify_bridge(timeout)

    async def _verify_bridge(self, timeout: float) -> bool:
        try:
            await self.ping()
            reply = await self.receive_json(timeout=timeout)
        except (BridgeError, ConnectionClosed, ValueError) as err:
            await self.close()
            raise BridgeHandshakeError("Endpoint did not answer the bridge ping") from err

        if (
            not isinstance(reply, dict)
            or reply.get("type") != "pong"
            or not isinstance(reply.get("connected"), bool)
        ):
            await self.close()
            raise BridgeHandshakeError(f"Endpoint is not a bridge: {reply!r}")
        return reply["connected"]

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the websocket."""
        if self._ws is None:
            raise BridgeConnectionError("WebSocket is not connected")
        await self._ws.send(json.dumps(payload))

    async def connect_device(self, ip: str, port: int) -> None:
        """Ask the bridge to open a link to ``ip:port``."""
        await self.send_json({"type": CommandType.CONNECT.value, "ip": ip, "port": port})

    async def send_line(self, message: str) -> None:
        """Ask the bridge to write ``message`` to the device."""
        await self.send_json({"type": CommandType.SEND.value, "message": message})

    async def disconnect_device(self) -> None:
        await self.send_json({"type": CommandType.DISCONNECT.value})

    async def ping(self) -> None:
        await self.send_json({"type": CommandType.PING.value})

    def __aiter__(self) -> AsyncIterator[BridgeWsMessage]:
        if self._ws is None:
            raise BridgeConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[BridgeWsMessage]:
        if self._ws is None:
            raise BridgeConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield BridgeWsMessage(type=BridgeWsMessageType.CLOSED)
        except Exception:
            yield BridgeWsMessage(type=BridgeWsMessageType.ERROR)
        else:
            # Normal iteration completion means the bridge closed gracefully.
            yield BridgeWsMessage(type=BridgeWsMessageType.CLOSED)

    async def receive_json(self, *, timeout: float | None = None) -> dict[str, Any]:
        """Wait for the next envelope and decode it.

        Raises:
            BridgeConnectionError: If the connection closes first.
            BridgeTimeout: If nothing arrives within ``timeout`` seconds.
        """
        if self._ws is None:
            raise BridgeConnectionError("WebSocket is not connected")
        try:
            raw = await asyncio.wait_for(self._ws.recv(), timeout)
        except TimeoutError as err:
            raise BridgeTimeout("Timed out waiting for a message") from err
        except ConnectionClosed as err:
            raise BridgeConnectionError("WebSocket closed by bridge") from err

        message = normalize_message(raw)
        if message is None:
            raise BridgeError("Unexpected frame from bridge")
        return self.decode_json(message)

    @staticmethod
    def decode_json(message: BridgeWsMessage) -> dict[str, Any]:
        """Decode a TEXT message payload into JSON."""
        if message.type is not BridgeWsMessageType.TEXT:
            raise BridgeError("Only TEXT messages can be decoded")
        if isinstance(message.data, dict):
            return message.data
        if not isinstance(message.data, str):
            raise BridgeError("Message data is not a string")
        result: dict[str, Any] = json.loads(message.data)
        return result
