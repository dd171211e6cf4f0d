"""aiohttp WebSocket endpoint that hosts one BridgeSession per client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from typing import Any

from aiohttp import web

from ..errors import DecodeError
from ..protocol import parse_command
from ..session import BridgeSession
from .messages import BridgeWsMessageType, normalize_message

_LOGGER = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0

WEBSOCKETS_KEY = web.AppKey("bridge_websockets", weakref.WeakSet)


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    """Upgrade the request and run a bridge session until the client leaves."""
    ws = web.WebSocketResponse(heartbeat=HEARTBEAT_INTERVAL)
    await ws.prepare(request)

    connections = request.app.get(WEBSOCKETS_KEY)
    if connections is not None:
        connections.add(ws)

    outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    session = BridgeSession(outbound.put_nowait)
    sender = asyncio.create_task(_send_envelopes(ws, outbound, session.session_id))

    _LOGGER.info(
        "[%s] Web client connected from %s", session.session_id, request.remote
    )

    try:
        async for raw in ws:
            message = normalize_message(raw)
            if message is None:
                continue

            if message.type is BridgeWsMessageType.TEXT:
                _handle_text(session, message.data)
            elif message.type is BridgeWsMessageType.CLOSED:
                break
            elif message.type is BridgeWsMessageType.ERROR:
                _LOGGER.error(
                    "[%s] WebSocket error: %s", session.session_id, ws.exception()
                )
                break
    finally:
        session.on_session_end()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        if connections is not None:
            connections.discard(ws)
        _LOGGER.info("[%s] Web client disconnected", session.session_id)

    return ws


def _handle_text(session: BridgeSession, data: Any) -> None:
    try:
        command = parse_command(data if isinstance(data, str) else "")
    except DecodeError as err:
        session.on_decode_error(err)
        return
    session.dispatch(command)


async def _send_envelopes(
    ws: web.WebSocketResponse,
    outbound: asyncio.Queue[dict[str, Any]],
    session_id: str,
) -> None:
    """Deliver queued envelopes in order until the socket goes away."""
    while True:
        envelope = await outbound.get()
        if ws.closed:
            _LOGGER.debug(
                "[%s] Dropping %s: socket closed", session_id, envelope.get("type")
            )
            continue
        try:
            await ws.send_json(envelope)
        except ConnectionError as err:
            _LOGGER.debug("[%s] Send failed: %s", session_id, err)
            return
