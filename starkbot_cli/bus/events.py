"""Messages that drive the dashboard loop."""

from __future__ import annotations

from dataclasses import dataclass

from starkbot_cli.dashboard.models import TuiFrame


@dataclass(frozen=True)
class RefreshTick:
    """Periodic timer asks for a fresh frame."""


@dataclass(frozen=True)
class PushFrame:
    """Frame delivered by the push listener."""

    frame: TuiFrame


@dataclass(frozen=True)
class KeyPress:
    """Raw keystroke data from the terminal."""

    key: str


@dataclass(frozen=True)
class Quit:
    """Stop the loop (signal or external request)."""

    reason: str = ""


SessionMessage = RefreshTick | PushFrame | KeyPress | Quit
