"""Bridge configuration.

Settings come from an optional YAML file, then the ``PORT`` environment
variable. The device connect/idle timeout is fixed and not configurable.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_PORT = 3000
DEFAULT_STATIC_DIR = Path(__file__).parent / "static"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
# Routes served by the web app itself.
_RESERVED_PATHS = ("/", "/config.json", "/static")


def _validate_port(value: Any, source: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{source}: port must be an integer")
    try:
        port = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"{source}: port must be an integer, got {value!r}") from err
    if not 1 <= port <= 65535:
        raise ConfigError(f"{source}: port out of range: {port}")
    return port


@dataclass
class BridgeConfig:
    """Runtime settings for the bridge server.

    Attributes:
        host: Interface the HTTP server binds to.
        port: HTTP listen port.
        static_dir: Directory holding index.html and page assets.
        ws_path: Path of the WebSocket upgrade endpoint.
        log_level: Root logging level name.
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    static_dir: Path = field(default=DEFAULT_STATIC_DIR)
    ws_path: str = "/ws"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.port = _validate_port(self.port, "config")
        self.static_dir = Path(self.static_dir)
        if not self.ws_path.startswith("/"):
            raise ConfigError(f"config: ws_path must start with '/': {self.ws_path}")
        if self.ws_path in _RESERVED_PATHS or self.ws_path.startswith("/static/"):
            raise ConfigError(f"config: ws_path is reserved: {self.ws_path}")
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(f"config: unknown log_level: {self.log_level}")


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from disk."""
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    with path.open() as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise ConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> BridgeConfig:
    """Build the bridge configuration.

    Args:
        path: Optional YAML file with BridgeConfig keys.
        env: Environment to read ``PORT`` from (defaults to os.environ).

    Raises:
        ConfigError: On unknown keys or invalid values.
    """
    values: dict[str, Any] = {}
    if path is not None:
        values = _load_yaml(path)
        known = {f.name for f in dataclasses.fields(BridgeConfig)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"{path}: unknown keys: {', '.join(unknown)}")

    environ = os.environ if env is None else env
    port_env = environ.get("PORT")
    if port_env:
        values["port"] = _validate_port(port_env, "PORT")

    return BridgeConfig(**values)
