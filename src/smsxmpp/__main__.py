"""Gateway entrypoint. Loads config, builds the service and runs it until SIGINT/SIGTERM."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from smsxmpp import __version__
from smsxmpp.config import Config, load_config_with_env
from smsxmpp.core.errors import GatewayConfigurationError, GatewayError
from smsxmpp.service import Service

# Third-party libraries to intercept and route through loguru
_INTERCEPTED_LIBRARIES = ["slixmpp", "aiohttp", "aiohttp.access", "aiohttp.server", "httpx", "httpcore"]


def _intercept_logging(level: str) -> None:
    """Route third-party library logs to loguru."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            try:
                log_level = logger.level(record.levelname).name
            except ValueError:
                log_level = str(record.levelno)
            msg = record.getMessage().replace("{", "{{").replace("}", "}}")
            logger.patch(
                lambda r: r.update(
                    name=record.name,
                    function=record.funcName,
                    line=record.lineno,
                ),
            ).opt(exception=record.exc_info).log(log_level, msg)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel(level)


def _safe_message_filter(record: Any) -> bool:
    """Escape braces/angles in log messages to prevent format/tag errors."""
    if isinstance(record.get("message"), str):
        msg = record["message"]
        msg = msg.replace("{", "{{").replace("}", "}}").replace("<", "\\<")
        record["message"] = msg
    return True


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru. Replace default logging.
    Level: verbose=True or LOG_LEVEL=DEBUG enables DEBUG; otherwise LOG_LEVEL or INFO."""
    level = "INFO"
    if verbose:
        level = "DEBUG"
    else:
        env_level = (os.environ.get("LOG_LEVEL") or "").upper()
        if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
            level = env_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=("<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}"),
        filter=_safe_message_filter,
    )
    _intercept_logging(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="smsxmpp", description="SMS over XMPP: an XEP-0114 component gateway")
    parser.add_argument(
        "config_path",
        nargs="?",
        type=Path,
        help="Path to config file or config directory",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to config file or config directory (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def load(config_path: Path) -> Config:
    """Load and validate config from a file or directory."""
    return Config(load_config_with_env(config_path))


def main(argv: list[str] | None = None) -> None:
    """Main entrypoint."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)

    config_path: Path = args.config or args.config_path or Path("config.yaml")
    if not config_path.exists():
        logger.error("Config file not found: {}", config_path)
        sys.exit(1)

    try:
        config = load(config_path)
        service = Service.from_config(config)
    except GatewayConfigurationError as exc:
        logger.error("Invalid configuration in {}: {}", config_path, exc)
        sys.exit(1)
    logger.info("Config loaded from {}", config_path)

    try:
        asyncio.run(_run(service))
    except GatewayError as exc:
        logger.error("Gateway stopped: {}", exc)
        sys.exit(1)


async def _run(service: Service) -> None:
    """Run the service; SIGINT/SIGTERM cancel it for a graceful shutdown."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, task.cancel)  # type: ignore[union-attr]

    try:
        await service.run()
    except asyncio.CancelledError:
        logger.info("Shutdown requested")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


if __name__ == "__main__":
    main()
