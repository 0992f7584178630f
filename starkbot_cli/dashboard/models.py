"""Data contracts for module TUI dashboards."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ActionDefinition:
    """A server-declared, key-triggered dashboard action."""

    key: str
    label: str
    action: str
    confirm: bool = False
    prompts: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "ActionDefinition | None":
        if not isinstance(data, dict):
            return None
        key = data.get("key")
        action = data.get("action")
        if not isinstance(key, str) or not key or not isinstance(action, str) or not action:
            return None
        prompts = data.get("prompts")
        return cls(
            key=key,
            label=str(data.get("label") or action),
            action=action,
            confirm=bool(data.get("confirm", False)),
            prompts=tuple(str(p) for p in prompts) if isinstance(prompts, list) else (),
        )


def parse_actions(raw: Any) -> tuple[ActionDefinition, ...]:
    """Parse a list of action dicts, dropping entries without key/action."""
    if not isinstance(raw, list):
        return ()
    parsed = (ActionDefinition.from_dict(item) for item in raw)
    return tuple(action for action in parsed if action is not None)


def actions_by_key(actions: tuple[ActionDefinition, ...]) -> dict[str, ActionDefinition]:
    """Key map for dispatch. A later action wins a duplicated key."""
    return {action.key: action for action in actions}


@dataclass(frozen=True)
class ActionSet:
    """Declared actions plus whether the dashboard has a navigable list."""

    navigable: bool = False
    actions: tuple[ActionDefinition, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "ActionSet":
        if not isinstance(data, dict):
            return cls()
        return cls(
            navigable=bool(data.get("navigable", False)),
            actions=parse_actions(data.get("actions")),
        )


@dataclass(frozen=True)
class TuiFrame:
    """One rendered dashboard screen.

    ``actions`` and ``navigable`` are ``None`` when the frame does not carry
    them, in which case the previous values stay in effect.
    """

    ansi: str
    actions: tuple[ActionDefinition, ...] | None = None
    navigable: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "TuiFrame":
        if not isinstance(data, dict):
            return cls(ansi="")
        navigable = data.get("navigable")
        return cls(
            ansi=str(data.get("ansi") or ""),
            actions=parse_actions(data["actions"]) if "actions" in data else None,
            navigable=navigable if isinstance(navigable, bool) else None,
        )


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an action submission."""

    ok: bool
    message: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "ActionResult":
        if not isinstance(data, dict):
            return cls(ok=False, error="Malformed action response")
        message = data.get("message")
        error = data.get("error")
        return cls(
            ok=bool(data.get("ok", False)),
            message=message if isinstance(message, str) else None,
            error=error if isinstance(error, str) else None,
        )


@dataclass
class SessionCursor:
    """Client-side selection hint. The server clamps it on the next fetch."""

    selected: int = 0
    scroll: int = 0
    page_size: int = field(default=20, repr=False)

    def as_state(self) -> dict[str, int]:
        return {"selected": self.selected, "scroll": self.scroll}

    def up(self) -> bool:
        if self.selected <= 0:
            return False
        self.selected -= 1
        if self.selected < self.scroll:
            self.scroll = self.selected
        return True

    def down(self) -> bool:
        self.selected += 1
        if self.selected >= self.scroll + self.page_size:
            self.scroll += 1
        return True

    def page_up(self) -> bool:
        self.selected = max(0, self.selected - self.page_size)
        self.scroll = max(0, self.scroll - self.page_size)
        return True

    def page_down(self) -> bool:
        self.selected += self.page_size
        self.scroll += self.page_size
        return True
