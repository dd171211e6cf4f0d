"""Tests for bridge configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from tcp_bridge.config import DEFAULT_PORT, DEFAULT_STATIC_DIR, BridgeConfig, load_config
from tcp_bridge.errors import ConfigError


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "bridge.yaml"
    path.write_text(text)
    return path


class TestBridgeConfig:
    """Tests for BridgeConfig defaults and validation."""

    def test_defaults(self):
        config = BridgeConfig()
        assert config.host == "0.0.0.0"
        assert config.port == DEFAULT_PORT == 3000
        assert config.static_dir == DEFAULT_STATIC_DIR
        assert config.ws_path == "/ws"
        assert config.log_level == "INFO"

    def test_log_level_normalized(self):
        assert BridgeConfig(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"port": 0},
            {"port": 70000},
            {"port": "abc"},
            {"port": True},
            {"ws_path": "ws"},
            {"ws_path": "/config.json"},
            {"ws_path": "/static/ws"},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            BridgeConfig(**kwargs)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_file_no_env(self):
        assert load_config(env={}) == BridgeConfig()

    def test_port_env_fallback(self):
        assert load_config(env={"PORT": "8080"}).port == 8080

    def test_empty_port_env_uses_default(self):
        assert load_config(env={"PORT": ""}).port == DEFAULT_PORT

    def test_invalid_port_env(self):
        with pytest.raises(ConfigError, match="PORT"):
            load_config(env={"PORT": "eighty"})

    def test_yaml_file(self, tmp_path):
        path = write_yaml(
            tmp_path,
            f"host: 127.0.0.1\nport: 9000\nstatic_dir: {tmp_path}\nws_path: /bridge\n",
        )
        config = load_config(path, env={})
        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.static_dir == tmp_path
        assert config.ws_path == "/bridge"

    def test_env_overrides_file(self, tmp_path):
        path = write_yaml(tmp_path, "port: 9000\n")
        assert load_config(path, env={"PORT": "9100"}).port == 9100

    def test_empty_file(self, tmp_path):
        assert load_config(write_yaml(tmp_path, ""), env={}) == BridgeConfig()

    def test_unknown_keys_rejected(self, tmp_path):
        path = write_yaml(tmp_path, "port: 9000\ntimeout: 5\n")
        with pytest.raises(ConfigError, match="unknown keys: timeout"):
            load_config(path, env={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="File not found"):
            load_config(tmp_path / "missing.yaml", env={})

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(write_yaml(tmp_path, "port: [9000\n"), env={})

    def test_non_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(write_yaml(tmp_path, "- 1\n- 2\n"), env={})
