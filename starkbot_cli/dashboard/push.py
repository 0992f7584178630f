"""Live push updates for a module dashboard.

The gateway keeps a stream open and sends a ``tui_frame`` event whenever the
module's state changes. The first frame after connecting repeats what the
initial fetch already drew, so it is dropped.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import httpx
from loguru import logger

from starkbot_cli.dashboard.models import TuiFrame
from starkbot_cli.errors import GatewayError
from starkbot_cli.stream.dispatcher import iter_events
from starkbot_cli.stream.events import EventKind

OnFrame = Callable[[TuiFrame], None]


class PushStreamSource(Protocol):
    def open_tui_stream(self, module: str, width: int, height: int) -> Any:
        """Async context manager yielding a response with ``aiter_bytes()``."""


class PushUpdateListener:
    """Background task that forwards pushed frames to ``on_frame``."""

    def __init__(
        self,
        client: PushStreamSource,
        module: str,
        width: int,
        height: int,
        on_frame: OnFrame,
    ) -> None:
        self.client = client
        self.module = module
        self.width = width
        self.height = height
        self.on_frame = on_frame

        self._task: asyncio.Task | None = None
        self._stopped = False
        self._delivered = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def delivered(self) -> int:
        return self._delivered

    def start(self) -> None:
        if self._task is not None:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._run(), name=f"tui-push-{self.module}")

    def stop(self) -> None:
        """Abort the connection. No callback fires after this returns."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait for the listener task to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        logger.debug(f"[push] listening for {self.module!r} ({self.width}x{self.height})")
        skip_first = True
        try:
            async with self.client.open_tui_stream(self.module, self.width, self.height) as resp:
                async for event in iter_events(resp.aiter_bytes()):
                    if self._stopped:
                        break
                    if event.kind is not EventKind.TUI_FRAME:
                        continue
                    if skip_first:
                        skip_first = False
                        continue
                    self._delivered += 1
                    self.on_frame(TuiFrame.from_dict(event.data))
        except asyncio.CancelledError:
            logger.debug(f"[push] listener for {self.module!r} cancelled")
        except (GatewayError, httpx.HTTPError) as exc:
            logger.debug(f"[push] stream for {self.module!r} ended: {exc}")
        finally:
            logger.debug(f"[push] stopped after {self._delivered} frame(s)")
