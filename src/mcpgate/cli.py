"""
MCPGate CLI - start the session manager behind its HTTP front-end.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from loguru import logger

from mcpgate import __version__

if TYPE_CHECKING:
    from mcpgate.core.app import MCPGateApp
    from mcpgate.web.server import WebServer


def setup_logging(debug: bool = False, log_dir: Optional[str] = "logs") -> None:
    """Configure logging."""
    # Remove default handler
    logger.remove()

    # Console handler
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level="DEBUG" if debug else "INFO",
        colorize=True,
    )

    # File handler
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)
        logger.add(
            log_path / "mcpgate.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level="DEBUG",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )


async def _close_sessions(app: "MCPGateApp") -> None:
    """Run the app shutdown to completion even if the calling task is cancelled."""
    shutdown = asyncio.ensure_future(app.shutdown())
    try:
        results = await asyncio.shield(shutdown)
    except asyncio.CancelledError:
        logger.warning("Interrupted during shutdown, waiting for sessions to close")
        await asyncio.wait([shutdown])
        raise
    if results:
        logger.info(f"Shutdown results: {results}")


async def serve(app: "MCPGateApp", web_server: "WebServer", auto_register: Optional[bool] = None) -> int:
    """Register servers, serve HTTP until SIGINT/SIGTERM or stop(), then close every session."""
    try:
        await app.startup(auto_register=auto_register)
        await web_server.start()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        logger.info("Termination requested. Cleaning up...")
        await _close_sessions(app)
    return 0


async def run_web_server(
    config_path: Optional[str],
    host: Optional[str],
    port: Optional[int],
    auto_register: Optional[bool],
) -> int:
    """Load configuration and run the web server; returns the process exit code."""
    from mcpgate.config.manager import ConfigError
    from mcpgate.core.app import MCPGateApp
    from mcpgate.web.server import WebServer

    app = MCPGateApp(config_path)
    try:
        await app.config.load()
    except ConfigError as e:
        logger.error(f"Fatal configuration error: {e}")
        return 1

    return await serve(app, WebServer(app=app, host=host, port=port), auto_register)


def cli(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MCPGate - multi-server MCP session manager"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (default: $MCPGATE_CONFIG or mcp_config.json)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for the HTTP server (default: from config, 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP server (default: from config, $PORT or 3000)"
    )
    parser.add_argument(
        "--no-auto-register",
        action="store_true",
        help="Do not connect configured servers on startup"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"MCPGate {__version__}"
    )

    args = parser.parse_args(argv)

    setup_logging(debug=args.debug)

    logger.info("=" * 50)
    logger.info("MCPGate - MCP session manager")
    logger.info("=" * 50)

    code = asyncio.run(
        run_web_server(
            args.config,
            args.host,
            args.port,
            False if args.no_auto_register else None,
        )
    )
    if code:
        sys.exit(code)


if __name__ == "__main__":
    cli()
