"""Transport layer for the bridge.

Components:
- adapter: aiohttp WebSocket endpoint hosting one session per client
- messages: normalized WebSocket frames
- ws_client: Python client for the bridge protocol
"""

from .adapter import handle_websocket
from .messages import BridgeWsMessage, BridgeWsMessageType, normalize_message
from .ws_client import BridgeWsClient

__all__ = [
    "BridgeWsClient",
    "BridgeWsMessage",
    "BridgeWsMessageType",
    "handle_websocket",
    "normalize_message",
]
