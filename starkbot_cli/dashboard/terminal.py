"""Exclusive raw keyboard input for the dashboard.

Raw mode is a process-wide terminal setting. ``RawTerminal`` is the one
owner of it: ``acquire``/``release`` pair up the termios changes, reading is
done through the event loop (``add_reader``), and ``suspended`` hands the
terminal back to line-oriented input for prompts.
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import AbstractContextManager, contextmanager
from typing import Callable, Iterator, Protocol, TextIO

from loguru import logger

KEY_CTRL_C = "\x03"
KEY_ESCAPE = "\x1b"
# Delivered once when the input stream closes.
KEY_EOF = ""

QUIT = "quit"
UP = "up"
DOWN = "down"
PAGE_UP = "page_up"
PAGE_DOWN = "page_down"

_KEY_NAMES = {
    "q": QUIT,
    KEY_CTRL_C: QUIT,
    KEY_EOF: QUIT,
    KEY_ESCAPE: QUIT,
    KEY_ESCAPE + KEY_ESCAPE: QUIT,
    "\x1b[A": UP,
    "\x1bOA": UP,
    "\x1b[B": DOWN,
    "\x1bOB": DOWN,
    "\x1b[5~": PAGE_UP,
    "\x1b[6~": PAGE_DOWN,
}

CLEAR_SCREEN = "\x1b[2J\x1b[H"


def key_name(data: str) -> str:
    """Map raw key data to a fixed binding name, or return it unchanged."""
    return _KEY_NAMES.get(data, data)


class TerminalInput(Protocol):
    """What the dashboard session needs from the terminal."""

    def acquire(self) -> None:
        """Enter raw input mode."""

    def release(self) -> None:
        """Restore the saved terminal mode."""

    def attach_reader(self, on_data: Callable[[str], None]) -> None:
        """Deliver raw key data to ``on_data`` from the event loop."""

    def detach_reader(self) -> None:
        """Stop delivering key data."""

    def suspended(self) -> AbstractContextManager[None]:
        """Temporarily leave raw mode for line input."""

    async def read_line(self, question: str) -> str:
        """Ask one question over line-oriented input."""


class RawTerminal:
    """Raw-mode owner for one TTY file descriptor."""

    def __init__(self, stream: TextIO | None = None, output: TextIO | None = None) -> None:
        self.stream = stream or sys.stdin
        self.output = output or sys.stdout
        self.enabled = os.name == "posix" and self.stream.isatty()
        self.fd: int | None = self.stream.fileno() if self.enabled else None

        self._saved_attrs: list | None = None
        self._on_data: Callable[[str], None] | None = None
        self._reader_attached = False

    @property
    def is_raw(self) -> bool:
        return self._saved_attrs is not None

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        if not self.enabled or self.fd is None or self.is_raw:
            return
        import termios
        import tty

        self._saved_attrs = termios.tcgetattr(self.fd)
        tty.setraw(self.fd)
        logger.debug("[terminal] raw mode on")

    def release(self) -> None:
        if self.fd is None or self._saved_attrs is None:
            return
        import termios

        try:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved_attrs)
        finally:
            self._saved_attrs = None
        logger.debug("[terminal] raw mode off")

    def __enter__(self) -> "RawTerminal":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.detach_reader()
        self.release()

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Leave raw mode (and stop key reading) for the duration of the block."""
        was_raw = self.is_raw
        on_data = self._on_data if self._reader_attached else None
        self.detach_reader()
        self.release()
        try:
            yield
        finally:
            if was_raw:
                self.acquire()
            if on_data is not None:
                self.attach_reader(on_data)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def attach_reader(self, on_data: Callable[[str], None]) -> None:
        if self.fd is None:
            return
        self.detach_reader()
        self._on_data = on_data
        asyncio.get_running_loop().add_reader(self.fd, self._on_readable)
        self._reader_attached = True

    def detach_reader(self) -> None:
        if not self._reader_attached or self.fd is None:
            return
        try:
            asyncio.get_running_loop().remove_reader(self.fd)
        except RuntimeError:
            # Loop already gone during interpreter shutdown.
            pass
        self._reader_attached = False

    def _on_readable(self) -> None:
        if self.fd is None:
            return
        data = os.read(self.fd, 64)
        if not data:
            logger.debug("[terminal] input closed")
            on_data = self._on_data
            self.detach_reader()
            if on_data is not None:
                on_data(KEY_EOF)
            return
        if self._on_data is not None:
            self._on_data(data.decode("utf-8", errors="replace"))

    async def read_line(self, question: str) -> str:
        """Write ``question`` and wait for one line without blocking the loop."""
        self.output.write(question)
        self.output.flush()
        if self.fd is None:
            return (await asyncio.to_thread(self.stream.readline)).rstrip("\r\n")

        loop = asyncio.get_running_loop()
        done: asyncio.Future[str] = loop.create_future()
        parts: list[str] = []

        def on_readable() -> None:
            data = os.read(self.fd, 1024)
            if not data:
                if not done.done():
                    done.set_result("".join(parts))
                return
            parts.append(data.decode("utf-8", errors="replace"))
            if "\n" in parts[-1] and not done.done():
                done.set_result("".join(parts))

        loop.add_reader(self.fd, on_readable)
        try:
            line = await done
        finally:
            loop.remove_reader(self.fd)
        return line.split("\n", 1)[0].rstrip("\r")
