"""Entrypoint for the debate arena server."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from .config import ArenaConfig
from .profiles import get_preset
from .server import ArenaServer, build_controller

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for the arena server.

    Host and port default to the ARENA_WS_HOST / ARENA_WS_PORT environment
    variables; flags given here win over the environment.
    """
    parser = argparse.ArgumentParser(description="Run a live two-agent debate arena")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    parser.add_argument("--host", default=None, help="WebSocket host to bind")
    parser.add_argument("--port", type=int, default=None, help="WebSocket port to bind")
    parser.add_argument("--left", default="paul", help="Agent preset arguing for the topic")
    parser.add_argument("--right", default="charlotte", help="Agent preset arguing against it")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """
    Main entry point for the arena.

    Sets up logging, loads configuration from the environment, wires both Live
    sessions into a controller and serves browsers until interrupted.
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    config = ArenaConfig.from_env()
    if args.host:
        config.ws_host = args.host
    if args.port:
        config.ws_port = args.port

    left, right = get_preset(args.left), get_preset(args.right)
    LOGGER.info("Starting arena: %s vs %s on %s", left.display_name, right.display_name, config.model)

    async def _serve() -> None:
        controller = build_controller(config, left, right)
        await ArenaServer(controller, config).run()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:  # pragma: no cover - graceful shutdown
        LOGGER.info("Arena shutdown requested by user")


if __name__ == "__main__":
    main()
