"""Error types for the TCP device bridge."""

from __future__ import annotations

import errno
from enum import Enum


class BridgeError(Exception):
    """Base error for bridge failures."""


class DecodeError(BridgeError):
    """Inbound command envelope could not be decoded."""


class NotConnectedError(BridgeError):
    """Operation requires an open device link."""


class ConfigError(BridgeError):
    """Bridge configuration is invalid."""


class BridgeTimeout(BridgeError):
    """Timeout while talking to the bridge endpoint."""


class BridgeConnectionError(BridgeError):
    """Network connection to the bridge endpoint failed."""


class BridgeHandshakeError(BridgeError):
    """WebSocket handshake with the bridge endpoint failed."""


class FailureKind(Enum):
    """Classification of device connection failures."""

    REFUSED = "refused"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    GENERIC = "generic"


class LinkError(BridgeError):
    """Device link failure with a fixed classification."""

    def __init__(self, kind: FailureKind, detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


_ERRNO_KINDS: dict[int, FailureKind] = {
    errno.ECONNREFUSED: FailureKind.REFUSED,
    errno.EHOSTUNREACH: FailureKind.UNREACHABLE,
    errno.ENETUNREACH: FailureKind.UNREACHABLE,
    errno.ETIMEDOUT: FailureKind.TIMEOUT,
}


def classify_os_error(err: OSError) -> LinkError:
    """Map a low-level socket error onto a LinkError."""
    kind = _ERRNO_KINDS.get(err.errno or 0, FailureKind.GENERIC)
    detail = err.strerror or str(err) or type(err).__name__
    return LinkError(kind, detail)


def classify_connect_error(err: OSError | ValueError) -> LinkError:
    """Map a failed connect attempt onto a LinkError.

    Resolver input errors (over-long labels, embedded NULs) surface as
    ValueError/UnicodeError rather than OSError and are reported as generic.
    """
    if isinstance(err, OSError):
        return classify_os_error(err)
    return LinkError(FailureKind.GENERIC, str(err) or type(err).__name__)
