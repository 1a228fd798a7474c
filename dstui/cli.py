"""Command line entry point: load settings, configure logging, serve."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from loguru import logger

from dstui.config import ConfigError, Settings, load_settings
from dstui.utils.logging import setup_logger
from dstui.web.server import start_server


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Web task board for dstask")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (defaults to $DSTUI_CONFIG or ./config.yml)",
    )
    parser.add_argument("--host", default=None, help="Address to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Minimum log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-file", type=Path, default=None, help="Also write logs to this file"
    )
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command line flags win over the config file and environment."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level.upper() if args.log_level else None,
        "log_file": args.log_file,
    }
    return replace(
        settings, **{key: value for key, value in overrides.items() if value is not None}
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = apply_overrides(load_settings(args.config), args)
    except ConfigError as exc:
        setup_logger(level="ERROR")
        logger.error(str(exc))
        return 2

    setup_logger(level=settings.log_level, log_file=settings.log_file)
    start_server(settings)
    return 0
