"""Per-kind event dispatch and the stream read loop."""

from __future__ import annotations

from collections import defaultdict
from typing import AsyncIterable, AsyncIterator, Callable

from loguru import logger

from starkbot_cli.stream.decoder import FrameDecoder
from starkbot_cli.stream.events import Event, EventKind, parse_frame

EventHandler = Callable[[Event], None]


async def iter_events(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[Event]:
    """Decode a chunk stream into events, in frame arrival order."""
    decoder = FrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            event = parse_frame(frame)
            if event is not None:
                yield event
    decoder.close()


class EventDispatcher:
    """Route events to handlers registered per kind.

    Handlers run synchronously in registration order. ``on_any`` handlers see
    every event after the kind-specific ones.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[EventHandler]] = defaultdict(list)
        self._any: list[EventHandler] = []

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        self._handlers[kind].append(handler)

    def on_any(self, handler: EventHandler) -> None:
        self._any.append(handler)

    def dispatch(self, event: Event) -> None:
        for handler in list(self._handlers.get(event.kind, [])):
            handler(event)
        for handler in list(self._any):
            handler(event)

    async def run(
        self,
        chunks: AsyncIterable[bytes | str],
        stop_on_done: bool = True,
    ) -> int:
        """Dispatch every event from ``chunks``; return how many were dispatched.

        With ``stop_on_done`` the loop returns right after a ``done`` event,
        leaving any remaining bytes unread for the caller to discard.
        """
        count = 0
        events = iter_events(chunks)
        try:
            async for event in events:
                self.dispatch(event)
                count += 1
                if stop_on_done and event.kind is EventKind.DONE:
                    logger.debug(f"[stream] done after {count} event(s)")
                    break
        finally:
            await events.aclose()
        return count
