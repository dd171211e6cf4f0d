"""aiohttp application serving the companion page and the bridge endpoint."""

from __future__ import annotations

import asyncio
import logging
import sys
import weakref
from typing import Any

from aiohttp import WSCloseCode, web

from .config import BridgeConfig
from .link import LINK_TIMEOUT
from .transport.adapter import WEBSOCKETS_KEY, handle_websocket

_LOGGER = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("bridge_config", BridgeConfig)


async def _handle_index(request: web.Request) -> web.StreamResponse:
    index = request.app[CONFIG_KEY].static_dir / "index.html"
    if not index.is_file():
        raise web.HTTPNotFound(text="index.html not found")
    return web.FileResponse(index)


async def _handle_page_config(request: web.Request) -> web.Response:
    """Settings the companion page needs before it can open the socket."""
    config = request.app[CONFIG_KEY]
    return web.json_response({"ws_path": config.ws_path})


async def _close_websockets(app: web.Application) -> None:
    """Close live client sockets so shutdown does not wait on them."""
    for ws in set(app[WEBSOCKETS_KEY]):
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")


def create_app(config: BridgeConfig | None = None) -> web.Application:
    """Build the web application.

    Routes:
    - GET /             companion page (static_dir/index.html)
    - GET /static/...   page assets
    - GET /config.json  page settings (the configured ws_path)
    - GET {ws_path}     WebSocket bridge endpoint
    """
    config = config or BridgeConfig()

    app = web.Application()
    app[CONFIG_KEY] = config
    app[WEBSOCKETS_KEY] = weakref.WeakSet()

    app.router.add_get("/", _handle_index)
    app.router.add_get("/config.json", _handle_page_config)
    app.router.add_get(config.ws_path, handle_websocket)
    if config.static_dir.is_dir():
        app.router.add_static("/static", config.static_dir)
    else:
        _LOGGER.warning("Static directory missing: %s", config.static_dir)

    app.on_shutdown.append(_close_websockets)
    return app


def _handle_loop_exception(
    loop: asyncio.AbstractEventLoop, context: dict[str, Any]
) -> None:
    """Last-resort handler: log the fault and stop the process."""
    exc = context.get("exception")
    _LOGGER.critical(
        "Unhandled fault: %s", context.get("message", "unknown"), exc_info=exc
    )
    sys.exit(1)


def _log_banner(config: BridgeConfig) -> None:
    _LOGGER.info("TCP bridge listening on port %d", config.port)
    _LOGGER.info("Open http://localhost:%d in a browser", config.port)
    _LOGGER.info(
        "Usage: enter the device IP and port, press connect, then send lines "
        "(each is terminated with CR; device timeout %.0fs)",
        LINK_TIMEOUT,
    )


async def _install_exception_handler(app: web.Application) -> None:
    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)


def run(config: BridgeConfig) -> None:
    """Serve until interrupted (SIGINT/SIGTERM shut down gracefully)."""
    app = create_app(config)
    app.on_startup.append(_install_exception_handler)
    _log_banner(config)
    web.run_app(app, host=config.host, port=config.port, print=None)
    _LOGGER.info("Server stopped")
