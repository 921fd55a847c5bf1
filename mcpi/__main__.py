"""
Command line entry point.

    python -m mcpi serve --config data/config.json
    python -m mcpi discover example.com
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import uvicorn

from .config import ConfigError
from .discovery import DiscoveryError, DiscoveryResolver
from .registry import StartupError
from .server import create_server


logger = logging.getLogger("mcpi")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcpi", description="MCPI server and discovery tools")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the MCPI server")
    serve.add_argument("--config", default="data/config.json", help="Path to the server configuration")
    serve.add_argument("--host", help="Bind address (overrides the configuration)")
    serve.add_argument("--port", type=int, help="Bind port (overrides the configuration)")

    discover = subparsers.add_parser("discover", help="Resolve a domain's MCPI endpoint")
    discover.add_argument("domain", help="Domain to look up, e.g. example.com")
    discover.add_argument("--timeout", type=float, default=10.0, help="DNS and HTTP timeout in seconds")

    return parser


def serve(args: argparse.Namespace) -> int:
    try:
        app = create_server(args.config)
    except (ConfigError, StartupError) as e:
        logger.error(f"Cannot start server: {e}")
        return 1

    config = app.state.server.config
    host = args.host or config.host
    port = args.port or config.port
    logger.info(f"Serving {config.provider.name} on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=args.log_level.lower())
    return 0


def discover(args: argparse.Namespace) -> int:
    resolver = DiscoveryResolver(timeout=args.timeout)
    try:
        result = asyncio.run(resolver.discover(args.domain))
    except DiscoveryError as e:
        logger.error(f"Discovery failed for {args.domain}: {type(e).__name__}: {e.message}")
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        return serve(args)
    return discover(args)


if __name__ == "__main__":
    sys.exit(main())
