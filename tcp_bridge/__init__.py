"""WebSocket to TCP bridge for line-oriented embedded devices."""

__version__ = "0.1.0"

from .config import BridgeConfig, load_config
from .errors import (
    BridgeConnectionError,
    BridgeError,
    BridgeHandshakeError,
    BridgeTimeout,
    ConfigError,
    DecodeError,
    FailureKind,
    LinkError,
    NotConnectedError,
)
from .link import LINK_TIMEOUT, DeviceLink, LinkEvent, LinkEventType, LinkState
from .protocol import Command, CommandType, parse_command
from .server import create_app
from .session import BridgeSession
from .transport import BridgeWsClient, BridgeWsMessage, BridgeWsMessageType

__all__ = [
    "LINK_TIMEOUT",
    "BridgeConfig",
    "BridgeConnectionError",
    "BridgeError",
    "BridgeHandshakeError",
    "BridgeSession",
    "BridgeTimeout",
    "BridgeWsClient",
    "BridgeWsMessage",
    "BridgeWsMessageType",
    "Command",
    "CommandType",
    "ConfigError",
    "DecodeError",
    "DeviceLink",
    "FailureKind",
    "LinkError",
    "LinkEvent",
    "LinkEventType",
    "LinkState",
    "NotConnectedError",
    "__version__",
    "create_app",
    "load_config",
    "parse_command",
]
