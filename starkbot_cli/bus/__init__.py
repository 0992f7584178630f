"""Message bus feeding the dashboard session loop."""

from starkbot_cli.bus.events import KeyPress, PushFrame, Quit, RefreshTick, SessionMessage
from starkbot_cli.bus.queue import MessageBus

__all__ = ["KeyPress", "MessageBus", "PushFrame", "Quit", "RefreshTick", "SessionMessage"]
