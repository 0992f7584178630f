"""One-line live status for everything in flight during a chat turn.

Tool calls, sub-agents and thinking notices overlap freely on the server.
``StatusTracker`` folds them into a single overwriting spinner line and
hides it while literal assistant text is written, so the spinner never
lands inside real output.

Usage:
    tracker = StatusTracker(console)
    tracker.attach(dispatcher)
    await dispatcher.run(chunks)
    tracker.finish()
"""

from __future__ import annotations

from typing import Callable, Protocol

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.status import Status

from starkbot_cli.stream.dispatcher import EventDispatcher
from starkbot_cli.stream.events import Event, EventKind

SUBTYPE_STYLE = "bold #7C3AED"
TOOL_STYLE = "yellow"
SUBAGENT_STYLE = "cyan"
SEGMENT_SEPARATOR = " | "


class Spinner(Protocol):
    """Minimal spinner contract."""

    @property
    def is_spinning(self) -> bool:
        """Whether the status line is currently shown."""

    def start(self, text: str) -> None:
        """Show the status line."""

    def update(self, text: str) -> None:
        """Replace the text of a visible status line."""

    def stop(self) -> None:
        """Hide the status line."""


class RichSpinner:
    """Spinner backed by ``rich.status.Status``."""

    def __init__(self, console: Console) -> None:
        self._status = Status("", console=console, spinner="dots", spinner_style="magenta")
        self._spinning = False

    @property
    def is_spinning(self) -> bool:
        return self._spinning

    def start(self, text: str) -> None:
        self._status.update(status=text)
        self._status.start()
        self._spinning = True

    def update(self, text: str) -> None:
        self._status.update(status=text)

    def stop(self) -> None:
        self._status.stop()
        self._spinning = False


class StatusTracker:
    """Aggregate concurrent progress signals into one spinner line."""

    def __init__(self, console: Console, spinner: Spinner | None = None) -> None:
        self.console = console
        self.spinner: Spinner = spinner or RichSpinner(console)

        self._subtype = ""
        self._tools: list[str] = []
        self._subagents: dict[str, str] = {}  # label -> subtype
        self._paused = False

        self._table: dict[EventKind, Callable[[Event], None]] = {
            EventKind.TOOL_CALL: lambda e: self.add_tool(e.tool_name or "unknown"),
            EventKind.TOOL_RESULT: lambda e: self.remove_tool(e.tool_name or "unknown"),
            EventKind.SUBAGENT_SPAWNED: lambda e: self.add_subagent(e.label or "?", e.agent_subtype),
            EventKind.SUBAGENT_COMPLETED: lambda e: self.remove_subagent(e.label or "?"),
            EventKind.SUBAGENT_FAILED: lambda e: self.remove_subagent(e.label or "?"),
            EventKind.SUBTYPE_CHANGE: lambda e: self.set_subtype(e.agent_subtype or e.label or ""),
            EventKind.THINKING: lambda e: self.set_thinking(e.content),
            EventKind.TASK_STARTED: self._on_task_started,
            EventKind.TASK_COMPLETED: lambda e: self.refresh(),
            EventKind.TEXT: lambda e: self.write_text(e.content or ""),
            EventKind.DONE: lambda e: self.finish(),
        }

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self, dispatcher: EventDispatcher) -> None:
        """Register this tracker for every chat event kind."""
        for kind in self._table:
            dispatcher.on(kind, self.handle_event)

    def handle_event(self, event: Event) -> None:
        handler = self._table.get(event.kind)
        if handler is not None:
            handler(event)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def active_tools(self) -> tuple[str, ...]:
        return tuple(self._tools)

    @property
    def active_subagents(self) -> dict[str, str]:
        return dict(self._subagents)

    @property
    def subtype(self) -> str:
        return self._subtype

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def is_visible(self) -> bool:
        return self.spinner.is_spinning

    def add_tool(self, name: str) -> None:
        if name not in self._tools:
            self._tools.append(name)
        self.refresh()

    def remove_tool(self, name: str) -> None:
        self._tools = [tool for tool in self._tools if tool != name]
        self.refresh()

    def add_subagent(self, label: str, subtype: str | None = None) -> None:
        self._subagents[label] = subtype or ""
        self.refresh()

    def remove_subagent(self, label: str) -> None:
        self._subagents.pop(label, None)
        self.refresh()

    def set_subtype(self, subtype: str) -> None:
        self._subtype = subtype
        self.refresh()

    def set_thinking(self, message: str | None = None) -> None:
        self._ensure_spinning(f"{self._prefix()}[dim]{escape(message or 'thinking...')}[/dim]")

    def set_task(self, task_name: str) -> None:
        self._ensure_spinning(f"{self._prefix()}[dim]{escape(task_name)}[/dim]")

    def _on_task_started(self, event: Event) -> None:
        if event.task_name:
            self.set_task(event.task_name)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _prefix(self) -> str:
        if self._subtype:
            label = escape(f"[{self._subtype}]")
            return f"[{SUBTYPE_STYLE}]{label}[/] "
        return ""

    def segments(self) -> list[str]:
        """Status segments: one per sub-agent, then one for all active tools."""
        parts: list[str] = []
        for label, subtype in self._subagents.items():
            detail = f" ({subtype})" if subtype else ""
            text = escape(f'subagent "{label}"{detail} running')
            parts.append(f"[{SUBAGENT_STYLE}]{text}[/]")
        if self._tools:
            names = ", ".join(f"[{TOOL_STYLE}]{escape(tool)}[/]" for tool in self._tools)
            parts.append(f"calling {names}")
        return parts

    def render_line(self) -> str | None:
        """Markup for the status line, or ``None`` when nothing is active."""
        parts = self.segments()
        if not parts:
            return None
        return f"{self._prefix()}{SEGMENT_SEPARATOR.join(parts)}"

    def refresh(self) -> None:
        line = self.render_line()
        if line is None:
            if self.spinner.is_spinning and not self._paused:
                self.spinner.stop()
            return
        self._ensure_spinning(line)

    def _ensure_spinning(self, text: str) -> None:
        if self._paused:
            return
        if self.spinner.is_spinning:
            self.spinner.update(text)
        else:
            self.spinner.start(text)

    # ------------------------------------------------------------------
    # Text output
    # ------------------------------------------------------------------

    def pause_for_text(self) -> None:
        if self.spinner.is_spinning:
            self.spinner.stop()
        self._paused = True

    def resume_after_text(self) -> None:
        self._paused = False
        if self._tools or self._subagents:
            self.refresh()

    def write_text(self, text: str) -> None:
        """Write literal assistant text with the status line out of the way."""
        self.pause_for_text()
        try:
            if text:
                self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)
        finally:
            self.resume_after_text()

    def finish(self) -> None:
        """Hide the status line and forget all tracked work. Safe to repeat."""
        if self.spinner.is_spinning:
            self.spinner.stop()
        if self._tools or self._subagents:
            logger.debug(
                f"[status] finish with {len(self._tools)} tool(s) and "
                f"{len(self._subagents)} sub-agent(s) still active"
            )
        self._tools = []
        self._subagents.clear()
        self._subtype = ""
        self._paused = False
