"""Command-line interface for offload-proxy.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

import argparse
import asyncio
import logging
import sys

from offload_proxy.config import Config
from offload_proxy.proxy import ProxyServer


def setup_logging(level: str):
    """Set up logging configuration.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Offload Proxy - Reverse proxy that lets a backend hand slow work "
            "to another service through response headers"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Proxy port 8080 to a local backend
  offload-proxy --target http://127.0.0.1:5000

  # Give offload targets up to two minutes to answer
  offload-proxy --target http://127.0.0.1:5000 --offload-timeout 120

  # Use a different control header prefix (Slow-Requested, Slow-Url, ...)
  offload-proxy --target http://127.0.0.1:5000 --header-prefix Slow-

  # Load configuration from file
  offload-proxy --config config.yaml

  # Use environment variables
  export PROXY_TARGET=http://127.0.0.1:5000
  export OFFLOAD_TIMEOUT=60
  offload-proxy
        """,
    )

    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind the proxy server to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind the proxy server to (default: 8080)",
    )
    parser.add_argument(
        "--target",
        type=str,
        help="Backend base URL (e.g., http://127.0.0.1:5000)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="Backend request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--offload-timeout",
        type=float,
        help="Offload request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--header-prefix",
        type=str,
        help="Prefix of the offload control headers (default: Offload-)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def load_config(args: argparse.Namespace) -> Config:
    """Load configuration from file or environment, then apply CLI overrides."""
    if args.config:
        config = Config.from_file(args.config)
    else:
        config = Config.from_env()

    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.target:
        config.target_host = args.target
    if args.timeout:
        config.timeout = args.timeout
    if args.offload_timeout:
        config.offload_timeout = args.offload_timeout
    if args.header_prefix:
        config.header_prefix = args.header_prefix
    if args.log_level:
        config.log_level = args.log_level

    return config


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    proxy = ProxyServer(
        host=config.host,
        port=config.port,
        target_host=config.target_host,
        timeout=config.timeout,
        offload_timeout=config.offload_timeout,
        header_prefix=config.header_prefix,
    )

    logger.info("Starting Offload Proxy Server")
    logger.info(f"Configuration: {config.to_dict()}")

    if not config.target_host:
        logger.warning("No backend target configured, every request will fail with 400")

    if config.port < 1024:
        logger.warning(
            f"Attempting to bind to privileged port {config.port}. "
            "This may require elevated permissions."
        )

    try:
        asyncio.run(proxy.run())
    except PermissionError as e:
        if config.port < 1024:
            print(
                f"\nError: Cannot bind to port {config.port} - Permission denied\n",
                file=sys.stderr,
            )
            print("Privileged ports (below 1024) require special permissions.", file=sys.stderr)
            print(
                "Run with sudo or use a non-privileged port: offload-proxy --port 8080\n",
                file=sys.stderr,
            )
        else:
            logger.error(f"Permission error: {e}", exc_info=True)
        sys.exit(1)
    except OSError as e:
        if "Address already in use" in str(e):
            print(
                f"\nError: Port {config.port} is already in use\n", file=sys.stderr
            )
            print("Solutions:", file=sys.stderr)
            print(f"  1. Stop the service using port {config.port}", file=sys.stderr)
            print("  2. Use a different port: offload-proxy --port 8081", file=sys.stderr)
            print(
                f"  3. Find what's using the port: sudo lsof -i :{config.port}\n",
                file=sys.stderr,
            )
        else:
            logger.error(f"OS error: {e}", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
