"""Configuration handling for offload proxy.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from offload_proxy.executor import DEFAULT_OFFLOAD_TIMEOUT
from offload_proxy.models import DEFAULT_HEADER_PREFIX

logger = logging.getLogger(__name__)


class Config:
    """Configuration container for offload proxy."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        target_host: Optional[str] = None,
        timeout: int = 30,
        offload_timeout: float = DEFAULT_OFFLOAD_TIMEOUT,
        header_prefix: str = DEFAULT_HEADER_PREFIX,
        log_level: str = "INFO",
    ):
        """Initialize configuration.

        Args:
            host: Host to bind the proxy server to
            port: Port to bind the proxy server to
            target_host: Backend base URL
            timeout: Backend request timeout in seconds
            offload_timeout: Offload request timeout in seconds
            header_prefix: Prefix of the offload control headers
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        self.host = host
        self.port = port
        self.target_host = target_host
        self.timeout = timeout
        self.offload_timeout = offload_timeout
        self.header_prefix = header_prefix
        self.log_level = log_level

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """Load configuration from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Config instance
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

        unknown = set(data) - set(cls().to_dict())
        if unknown:
            raise ValueError(
                f"Unknown configuration keys in {config_path}: {', '.join(sorted(unknown))}"
            )

        logger.debug(f"Loaded configuration from {path}")
        return cls(**data)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config instance
        """
        return cls(
            host=os.getenv("PROXY_HOST", "0.0.0.0"),
            port=int(os.getenv("PROXY_PORT", "8080")),
            target_host=os.getenv("PROXY_TARGET"),
            timeout=int(os.getenv("PROXY_TIMEOUT", "30")),
            offload_timeout=float(
                os.getenv("OFFLOAD_TIMEOUT", str(DEFAULT_OFFLOAD_TIMEOUT))
            ),
            header_prefix=os.getenv("OFFLOAD_HEADER_PREFIX", DEFAULT_HEADER_PREFIX),
            log_level=os.getenv("PROXY_LOG_LEVEL", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation
        """
        return {
            "host": self.host,
            "port": self.port,
            "target_host": self.target_host,
            "timeout": self.timeout,
            "offload_timeout": self.offload_timeout,
            "header_prefix": self.header_prefix,
            "log_level": self.log_level,
        }
