from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from . import __version__
from .server import McpServer
from .settings import Settings, get_settings
from .tool import GenerateImageTool


def configure_logging(level: str) -> None:
    """Send logs to stderr only; stdout carries protocol messages."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format="{time:YYYY-MM-DD HH:mm:ss} {level} [{name}] {message}")


def build_server(settings: Settings) -> McpServer:
    return McpServer(tool=GenerateImageTool(settings), settings=settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nano-banana-mcp", description="Nano Banana MCP image server (stdio)")
    parser.add_argument("--log-level", help="Log level for stderr output (default: LOG_LEVEL or INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    settings = get_settings()

    configure_logging(args.log_level or settings.log_level)
    if not settings.use_openrouter:
        # Not fatal: initialize and tools/list still work, calls report the missing key.
        logger.warning("OPENROUTER_API_KEY is not set; tool calls will fail until it is provided")

    try:
        asyncio.run(build_server(settings).serve_stdio())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
