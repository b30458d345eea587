"""Tests for configuration module."""

import os
import tempfile

import pytest

from offload_proxy.cli import build_parser, load_config
from offload_proxy.config import Config


def test_config_defaults():
    """Test default configuration values."""
    config = Config()
    assert config.host == "0.0.0.0"
    assert config.port == 8080
    assert config.target_host is None
    assert config.timeout == 30
    assert config.offload_timeout == 30
    assert config.header_prefix == "Offload-"
    assert config.log_level == "INFO"


def test_config_custom_values():
    """Test configuration with custom values."""
    config = Config(
        host="127.0.0.1",
        port=3128,
        target_host="http://example.com",
        timeout=60,
        offload_timeout=120,
        header_prefix="Slow-",
        log_level="DEBUG"
    )
    assert config.host == "127.0.0.1"
    assert config.port == 3128
    assert config.target_host == "http://example.com"
    assert config.timeout == 60
    assert config.offload_timeout == 120
    assert config.header_prefix == "Slow-"
    assert config.log_level == "DEBUG"


def test_config_from_env(monkeypatch):
    """Test loading configuration from environment variables."""
    monkeypatch.setenv("PROXY_HOST", "192.168.1.1")
    monkeypatch.setenv("PROXY_PORT", "9090")
    monkeypatch.setenv("PROXY_TARGET", "http://test.com")
    monkeypatch.setenv("PROXY_TIMEOUT", "45")
    monkeypatch.setenv("OFFLOAD_TIMEOUT", "90.5")
    monkeypatch.setenv("OFFLOAD_HEADER_PREFIX", "Defer-")
    monkeypatch.setenv("PROXY_LOG_LEVEL", "WARNING")

    config = Config.from_env()
    assert config.host == "192.168.1.1"
    assert config.port == 9090
    assert config.target_host == "http://test.com"
    assert config.timeout == 45
    assert config.offload_timeout == 90.5
    assert config.header_prefix == "Defer-"
    assert config.log_level == "WARNING"


def test_config_from_env_defaults(monkeypatch):
    """Test environment loading falls back to defaults."""
    for name in ("OFFLOAD_TIMEOUT", "OFFLOAD_HEADER_PREFIX", "PROXY_TARGET"):
        monkeypatch.delenv(name, raising=False)

    config = Config.from_env()
    assert config.offload_timeout == 30
    assert config.header_prefix == "Offload-"
    assert config.target_host is None


def test_config_from_file():
    """Test loading configuration from YAML file."""
    yaml_content = """
host: "10.0.0.1"
port: 7777
target_host: "http://yaml.com"
timeout: 20
offload_timeout: 300
header_prefix: "Slow-"
log_level: "ERROR"
"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(yaml_content)
        temp_path = f.name

    try:
        config = Config.from_file(temp_path)
        assert config.host == "10.0.0.1"
        assert config.port == 7777
        assert config.target_host == "http://yaml.com"
        assert config.timeout == 20
        assert config.offload_timeout == 300
        assert config.header_prefix == "Slow-"
        assert config.log_level == "ERROR"
    finally:
        os.unlink(temp_path)


def test_config_from_empty_file():
    """Test an empty YAML file yields defaults."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        temp_path = f.name

    try:
        config = Config.from_file(temp_path)
        assert config.to_dict() == Config().to_dict()
    finally:
        os.unlink(temp_path)


def test_config_from_file_unknown_key():
    """Test unknown keys are rejected."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write("hooks_dir: ./hooks\n")
        temp_path = f.name

    try:
        with pytest.raises(ValueError, match="hooks_dir"):
            Config.from_file(temp_path)
    finally:
        os.unlink(temp_path)


def test_config_from_nonexistent_file():
    """Test loading from nonexistent file raises error."""
    with pytest.raises(FileNotFoundError):
        Config.from_file("/nonexistent/config.yaml")


def test_config_to_dict():
    """Test converting configuration to dictionary."""
    config = Config(
        host="1.2.3.4",
        port=1234,
        target_host="http://dict.com"
    )
    config_dict = config.to_dict()

    assert config_dict["host"] == "1.2.3.4"
    assert config_dict["port"] == 1234
    assert config_dict["target_host"] == "http://dict.com"
    assert config_dict["timeout"] == 30
    assert config_dict["offload_timeout"] == 30
    assert config_dict["header_prefix"] == "Offload-"
    assert config_dict["log_level"] == "INFO"


def test_cli_overrides_environment(monkeypatch):
    """Test command-line arguments win over environment variables."""
    monkeypatch.setenv("PROXY_TARGET", "http://env.com")
    monkeypatch.setenv("OFFLOAD_TIMEOUT", "10")

    args = build_parser().parse_args(
        ["--target", "http://cli.com", "--offload-timeout", "60", "--header-prefix", "Slow-"]
    )
    config = load_config(args)

    assert config.target_host == "http://cli.com"
    assert config.offload_timeout == 60
    assert config.header_prefix == "Slow-"


def test_cli_loads_config_file():
    """Test --config reads the YAML file before applying overrides."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write('target_host: "http://yaml.com"\nport: 7777\n')
        temp_path = f.name

    try:
        args = build_parser().parse_args(["--config", temp_path, "--port", "9999"])
        config = load_config(args)
        assert config.target_host == "http://yaml.com"
        assert config.port == 9999
    finally:
        os.unlink(temp_path)
