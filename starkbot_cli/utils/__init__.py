"""Utility helpers for starkbot-cli."""

from starkbot_cli.utils.logging import setup_logging
from starkbot_cli.utils.ui import console, print_error, print_success, print_warning

__all__ = ["console", "print_error", "print_success", "print_warning", "setup_logging"]
