"""Live status line for streamed chat turns."""

from starkbot_cli.status.tracker import RichSpinner, Spinner, StatusTracker

__all__ = ["RichSpinner", "Spinner", "StatusTracker"]
