"""Loguru sink setup for the CLI."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from starkbot_cli.config.loader import get_config_dir


def default_log_path() -> Path:
    return get_config_dir() / "logs" / "starkbot.log"


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> Path:
    """Route logs to a rotating file; stderr only with ``verbose``.

    The terminal belongs to the spinner and the dashboard, so the default
    stderr sink is removed.
    """
    path = log_file or default_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        path,
        level=level.upper(),
        rotation="10 MB",
        retention="14 days",
        backtrace=True,
        diagnose=False,
    )
    if verbose:
        logger.add(sys.stderr, level="DEBUG")
    return path
