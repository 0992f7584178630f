"""Event-stream decoding: frames, events and dispatch."""

from starkbot_cli.stream.decoder import FrameDecoder
from starkbot_cli.stream.dispatcher import EventDispatcher, iter_events
from starkbot_cli.stream.events import Event, EventKind, parse_frame

__all__ = [
    "Event",
    "EventDispatcher",
    "EventKind",
    "FrameDecoder",
    "iter_events",
    "parse_frame",
]
