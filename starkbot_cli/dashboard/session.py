"""Interactive module dashboard over the gateway.

The server renders the whole screen as an ANSI block; the client owns the
keyboard. Three sources ask for screen updates: a refresh timer, the push
listener and the user's keystrokes. All of them post to one ``MessageBus``
and a single loop consumes the messages one at a time, so a render is never
interleaved with another render, a prompt or a cursor change.

States: INITIALIZING -> RENDERING <-> AWAITING_INPUT -> PROMPTING_USER
(back to AWAITING_INPUT) -> TERMINATED.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from enum import Enum, auto
from typing import Any, Protocol, TextIO

from loguru import logger

from starkbot_cli.bus.events import KeyPress, PushFrame, Quit, RefreshTick, SessionMessage
from starkbot_cli.bus.queue import MessageBus
from starkbot_cli.dashboard.models import (
    ActionDefinition,
    ActionResult,
    ActionSet,
    SessionCursor,
    TuiFrame,
    actions_by_key,
)
from starkbot_cli.dashboard.push import PushUpdateListener
from starkbot_cli.dashboard.terminal import (
    CLEAR_SCREEN,
    DOWN,
    PAGE_DOWN,
    PAGE_UP,
    QUIT,
    UP,
    TerminalInput,
    key_name,
)
from starkbot_cli.errors import DashboardError, GatewayError

DEFAULT_REFRESH_S = 5.0
ERROR_STYLE = "\x1b[31m"
RESET_STYLE = "\x1b[0m"


class SessionState(Enum):
    INITIALIZING = auto()
    RENDERING = auto()
    AWAITING_INPUT = auto()
    PROMPTING_USER = auto()
    TERMINATED = auto()


class DashboardClient(Protocol):
    """Gateway operations used by the dashboard."""

    async def fetch_tui_frame(
        self, module: str, width: int, height: int, cursor: SessionCursor | None = None
    ) -> TuiFrame: ...

    async def fetch_tui_actions(self, module: str) -> ActionSet: ...

    async def post_tui_action(
        self, module: str, action: str, cursor: SessionCursor, inputs: list[str] | None = None
    ) -> ActionResult: ...

    def open_tui_stream(self, module: str, width: int, height: int) -> Any: ...


def normalize_refresh_interval(value: float | None) -> float:
    """Refresh period in seconds; anything below one second falls back to the default."""
    if value is None or value < 1:
        return DEFAULT_REFRESH_S
    return float(value)


class DashboardSession:
    """Drive one interactive dashboard until the user quits."""

    def __init__(
        self,
        client: DashboardClient,
        module: str,
        width: int,
        height: int,
        terminal: TerminalInput,
        output: TextIO | None = None,
        refresh_interval_s: float = DEFAULT_REFRESH_S,
        page_size: int = 20,
        error_flash_s: float = 1.5,
        push_updates: bool = True,
        gate_navigation: bool = True,
        bus: MessageBus | None = None,
    ) -> None:
        self.client = client
        self.module = module
        self.width = width
        self.height = height
        self.terminal = terminal
        self.output = output or sys.stdout
        self.refresh_interval_s = normalize_refresh_interval(refresh_interval_s)
        self.error_flash_s = error_flash_s
        self.push_updates = push_updates
        self.gate_navigation = gate_navigation
        self.bus = bus or MessageBus()

        self.cursor = SessionCursor(page_size=page_size)
        self.navigable = False
        self.actions: tuple[ActionDefinition, ...] = ()
        self.state = SessionState.INITIALIZING
        self.running = False
        self.render_count = 0

        self._key_map: dict[str, ActionDefinition] = {}
        self._timer_task: asyncio.Task | None = None
        self._push: PushUpdateListener | None = None
        self._signals: list[int] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run the session loop.

        Terminal cleanup runs on every exit path. A failed frame fetch ends
        the session with ``DashboardError`` after the terminal is restored.
        """
        try:
            await self._start()
            while self.running:
                message = await self.bus.consume()
                await self.handle(message)
        except GatewayError as exc:
            logger.error(f"[dashboard] {self.module!r}: {exc}")
            self.close()
            raise DashboardError(str(exc)) from exc
        finally:
            self.close()
            await self._wait_background()

    async def _wait_background(self) -> None:
        if self._timer_task is not None:
            await asyncio.gather(self._timer_task, return_exceptions=True)
        if self._push is not None:
            await self._push.wait()

    async def _start(self) -> None:
        self.apply_action_set(await self.client.fetch_tui_actions(self.module))

        self.terminal.acquire()
        self.running = True
        await self.render()

        self._timer_task = asyncio.create_task(self._tick_loop(), name=f"tui-refresh-{self.module}")
        if self.push_updates:
            self._push = PushUpdateListener(
                self.client,
                self.module,
                self.width,
                self.height,
                on_frame=lambda frame: self.bus.publish(PushFrame(frame)),
            )
            self._push.start()
        self.terminal.attach_reader(self._on_key_data)
        self._install_signal_handlers()
        logger.info(
            f"[dashboard] {self.module!r} started ({self.width}x{self.height}, "
            f"refresh {self.refresh_interval_s}s, {len(self.actions)} action(s))"
        )

    def close(self) -> None:
        """Tear everything down once. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self.running = False
        self.state = SessionState.TERMINATED

        if self._timer_task is not None:
            self._timer_task.cancel()
        if self._push is not None:
            self._push.stop()
        self._remove_signal_handlers()
        self.terminal.detach_reader()
        self.terminal.release()
        self.bus.close()
        self._write(CLEAR_SCREEN)
        logger.info(f"[dashboard] {self.module!r} closed after {self.render_count} render(s)")

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGHUP):
            try:
                loop.add_signal_handler(sig, self.bus.publish, Quit(sig.name))
            except (NotImplementedError, RuntimeError, AttributeError):
                continue
            self._signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._signals:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    async def _tick_loop(self) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.refresh_interval_s)
            except asyncio.CancelledError:
                break
            if self.running:
                self.bus.publish(RefreshTick())

    def _on_key_data(self, data: str) -> None:
        if self.running:
            self.bus.publish(KeyPress(data))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def handle(self, message: SessionMessage) -> None:
        if not self.running:
            return
        if isinstance(message, RefreshTick):
            await self.render()
        elif isinstance(message, PushFrame):
            self.show_frame(message.frame)
        elif isinstance(message, KeyPress):
            await self.handle_key(message.key)
        elif isinstance(message, Quit):
            logger.info(f"[dashboard] quit requested ({message.reason or 'no reason'})")
            self.close()

    async def handle_key(self, data: str) -> None:
        name = key_name(data)
        if name == QUIT:
            self.close()
            return

        if name in (UP, DOWN, PAGE_UP, PAGE_DOWN):
            if self.gate_navigation and not self.navigable:
                return
            move = {
                UP: self.cursor.up,
                DOWN: self.cursor.down,
                PAGE_UP: self.cursor.page_up,
                PAGE_DOWN: self.cursor.page_down,
            }[name]
            if move():
                await self.render()
            return

        action = self._key_map.get(data)
        if action is not None:
            await self.execute_action(action)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _write(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()

    def apply_action_set(self, action_set: ActionSet) -> None:
        self.navigable = action_set.navigable
        self.set_actions(action_set.actions)

    def set_actions(self, actions: tuple[ActionDefinition, ...]) -> None:
        """Replace the whole key map."""
        self.actions = actions
        self._key_map = actions_by_key(actions)

    def show_frame(self, frame: TuiFrame) -> None:
        """Draw a frame as the latest snapshot and adopt its actions."""
        self._write(CLEAR_SCREEN + frame.ansi)
        if frame.actions is not None:
            self.set_actions(frame.actions)
        if frame.navigable is not None:
            self.navigable = frame.navigable
        self.render_count += 1

    async def render(self) -> None:
        self.state = SessionState.RENDERING
        frame = await self.client.fetch_tui_frame(self.module, self.width, self.height, self.cursor)
        if not self.running:
            return
        self.show_frame(frame)
        self.state = SessionState.AWAITING_INPUT

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _ask(self, question: str) -> str:
        self.state = SessionState.PROMPTING_USER
        with self.terminal.suspended():
            self._write("\r\n")
            answer = await self.terminal.read_line(question)
        self.state = SessionState.AWAITING_INPUT
        return answer

    async def execute_action(self, action: ActionDefinition) -> None:
        inputs: list[str] | None = None
        if action.prompts:
            inputs = []
            for prompt in action.prompts:
                inputs.append(await self._ask(f"  {prompt} "))

        if action.confirm:
            answer = await self._ask(f"  Confirm {action.label}? (y/N) ")
            if answer.strip().lower() != "y":
                logger.info(f"[dashboard] action {action.action!r} cancelled at confirmation")
                await self.render()
                return

        logger.info(f"[dashboard] submitting action {action.action!r} at {self.cursor.as_state()}")
        result = await self.client.post_tui_action(self.module, action.action, self.cursor, inputs)
        if not result.ok:
            error = result.error or result.message or "action failed"
            logger.warning(f"[dashboard] action {action.action!r} failed: {error}")
            self._write(f"\r\n  {ERROR_STYLE}Error: {error}{RESET_STYLE}")
            await asyncio.sleep(self.error_flash_s)
        await self.render()


async def print_frame_once(
    client: DashboardClient,
    module: str,
    width: int,
    height: int,
    output: TextIO | None = None,
) -> None:
    """Non-interactive mode: fetch one frame and print it."""
    frame = await client.fetch_tui_frame(module, width, height)
    out = output or sys.stdout
    out.write(frame.ansi)
    out.flush()
