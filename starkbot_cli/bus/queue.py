"""Single message channel between update sources and the dashboard loop."""

from __future__ import annotations

import asyncio

from loguru import logger

from starkbot_cli.bus.events import RefreshTick, SessionMessage


class MessageBus:
    """FIFO of session messages consumed one at a time.

    Timer ticks are coalesced: while one tick is waiting, further ticks are
    dropped, so a slow render never builds a backlog of refreshes.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[SessionMessage] = asyncio.Queue()
        self._tick_pending = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, message: SessionMessage) -> bool:
        """Enqueue a message. Returns False when it was dropped."""
        if self._closed:
            return False
        if isinstance(message, RefreshTick):
            if self._tick_pending:
                return False
            self._tick_pending = True
        self._queue.put_nowait(message)
        return True

    async def consume(self) -> SessionMessage:
        message = await self._queue.get()
        if isinstance(message, RefreshTick):
            self._tick_pending = False
        return message

    def size(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Refuse further messages and drop anything still queued."""
        self._closed = True
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        if dropped:
            logger.debug(f"[bus] dropped {dropped} queued message(s) on close")
