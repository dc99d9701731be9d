"""
RTLS-Link Device Manager - command line entry point

    rtls-link-server [--config path/to/config.yaml]

The config path falls back to $RTLS_LINK_CONFIG, then config/config.yaml.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

import yaml

from .config_loader import DEFAULT_CONFIG_PATH
from .errors import RtlsLinkError
from .services.link_server import LinkServer

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'RTLS_LINK_CONFIG'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rtls-link-server",
                                     description="RTLS-Link device discovery and management server")
    parser.add_argument("--config", "-c",
                        default=os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH),
                        help=f"YAML configuration file (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG_PATH})")
    return parser.parse_args(argv)


async def serve(config_path: str) -> int:
    """Run the server until a signal arrives, returns the process exit code"""
    try:
        server = LinkServer(config_path=config_path)
    except (OSError, RtlsLinkError, yaml.YAMLError) as e:
        print(f"Cannot load configuration {config_path}: {e}", file=sys.stderr)
        return 2
    logger.info(f"Using configuration file: {config_path}")

    loop = asyncio.get_running_loop()

    def _shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down...")
        loop.create_task(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        await server.start()
    except Exception as e:
        logger.error(f"Server failed: {e}")
        return 1
    finally:
        await server.stop()

    return 0


def run(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    try:
        sys.exit(asyncio.run(serve(args.config)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
