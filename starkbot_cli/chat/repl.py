"""Chat front-ends: one-shot message and the interactive REPL."""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Awaitable, Callable, Protocol

from loguru import logger
from rich.console import Console
from rich.markup import escape

from starkbot_cli.errors import StarkbotError
from starkbot_cli.gateway.models import MessagesResponse, NewSessionResponse, SessionsResponse
from starkbot_cli.status.tracker import Spinner, StatusTracker
from starkbot_cli.stream.dispatcher import EventDispatcher
from starkbot_cli.utils.ui import PREFIX, role_prefix

PromptFn = Callable[[], Awaitable[str]]

QUIT_COMMANDS = ("/quit", "/exit", "/q")


class ChatClient(Protocol):
    async def chat_stream(self, message: str, dispatcher: EventDispatcher) -> int: ...

    async def new_session(self) -> NewSessionResponse: ...

    async def list_sessions(self) -> SessionsResponse: ...

    async def get_history(self, session_id: int) -> MessagesResponse: ...


async def stream_reply(
    client: ChatClient,
    message: str,
    console: Console,
    spinner: Spinner | None = None,
) -> int:
    """Send ``message`` and render the streamed reply with a live status line."""
    dispatcher = EventDispatcher()
    tracker = StatusTracker(console, spinner)
    tracker.attach(dispatcher)
    kinds: Counter[str] = Counter()
    dispatcher.on_any(lambda event: kinds.update([event.kind.value]))

    console.print(f"{PREFIX['agent']} ", end="")
    try:
        return await client.chat_stream(message, dispatcher)
    finally:
        tracker.finish()
        console.print()
        logger.debug(f"[chat] reply events: {dict(kinds)}")


async def run_one_shot(
    client: ChatClient,
    message: str,
    console: Console,
    spinner: Spinner | None = None,
) -> int:
    """Send one message. Errors propagate so the caller can exit non-zero."""
    logger.info(f"[chat] one-shot message ({len(message)} chars)")
    return await stream_reply(client, message, console, spinner)


def print_history(console: Console, history: MessagesResponse) -> None:
    for msg in history.messages:
        console.print(f"{role_prefix(msg.role)} {escape(msg.content)}", highlight=False)


class ChatRepl:
    """Line-oriented chat loop with slash commands."""

    def __init__(
        self,
        client: ChatClient,
        console: Console,
        prompt: PromptFn | None = None,
        spinner_factory: Callable[[], Spinner] | None = None,
    ) -> None:
        self.client = client
        self.console = console
        self.prompt = prompt or self._console_prompt
        self.spinner_factory = spinner_factory
        self.turns = 0

        self._commands: dict[str, Callable[[list[str]], Awaitable[None]]] = {
            "/new": self._cmd_new,
            "/sessions": self._cmd_sessions,
            "/history": self._cmd_history,
            "/help": self._cmd_help,
        }

    async def _console_prompt(self) -> str:
        return await asyncio.to_thread(self.console.input, f"{PREFIX['you']} ")

    def _system(self, text: str) -> None:
        self.console.print(f"{PREFIX['system']} {text}", highlight=False)

    def _error(self, text: str) -> None:
        self.console.print(f"{PREFIX['error']} {escape(text)}", highlight=False)

    async def run(self) -> None:
        self.console.print(
            "[dim]Starkbot CLI - type a message, /new to reset, /sessions to list, /quit to exit[/dim]"
        )
        while True:
            try:
                line = await self.prompt()
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                break
            if not await self.handle_line(line):
                break
        self.console.print("[dim]Goodbye![/dim]")

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the REPL should exit."""
        text = line.strip()
        if not text:
            return True
        if text in QUIT_COMMANDS:
            return False

        parts = text.split()
        command = self._commands.get(parts[0]) if text.startswith("/") else None
        try:
            if command is not None:
                await command(parts[1:])
            else:
                await self._send(text)
        except StarkbotError as exc:
            logger.warning(f"[chat] {exc}")
            self._error(str(exc))
        return True

    async def _send(self, text: str) -> None:
        spinner = self.spinner_factory() if self.spinner_factory else None
        self.turns += 1
        await stream_reply(self.client, text, self.console, spinner)

    async def _cmd_new(self, args: list[str]) -> None:
        resp = await self.client.new_session()
        self._system(f"New session created (id: {resp.session_id})")

    async def _cmd_sessions(self, args: list[str]) -> None:
        resp = await self.client.list_sessions()
        if not resp.sessions:
            self._system("No sessions found")
            return
        self._system("Sessions:")
        for s in resp.sessions:
            self.console.print(
                f"  [cyan]{escape(s.session_key)}[/cyan] | {s.message_count} msgs "
                f"| last active: [dim]{escape(s.last_activity_at)}[/dim]",
                highlight=False,
            )

    async def _cmd_history(self, args: list[str]) -> None:
        if not args:
            self._system("Usage: /history <session_id>")
            return
        try:
            session_id = int(args[0])
        except ValueError:
            self._error(f"Invalid session ID: {args[0]}")
            return
        print_history(self.console, await self.client.get_history(session_id))

    async def _cmd_help(self, args: list[str]) -> None:
        self._system("Commands:")
        for name, summary in (
            ("/new", "Start a new session"),
            ("/sessions", "List sessions"),
            ("/history <id>", "Show message history"),
            ("/quit", "Exit"),
        ):
            self.console.print(f"  [cyan]{escape(name)}[/cyan]  {summary}")
