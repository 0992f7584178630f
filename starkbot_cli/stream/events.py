"""Event contract for decoded stream frames."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

DATA_PREFIX = "data:"
EVENT_PREFIX = "event:"
COMMENT_PREFIX = ":"


class EventKind(str, Enum):
    """Every event kind the client understands."""

    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SUBAGENT_SPAWNED = "subagent_spawned"
    SUBAGENT_COMPLETED = "subagent_completed"
    SUBAGENT_FAILED = "subagent_failed"
    SUBTYPE_CHANGE = "subtype_change"
    THINKING = "thinking"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TEXT = "text"
    DONE = "done"
    TUI_FRAME = "tui_frame"


_KINDS_BY_NAME = {kind.value: kind for kind in EventKind}


@dataclass(frozen=True)
class Event:
    """One parsed stream event.

    Which optional fields are set depends on ``kind``; ``data`` always holds
    the decoded JSON payload as received.
    """

    kind: EventKind
    content: str | None = None
    tool_name: str | None = None
    label: str | None = None
    agent_subtype: str | None = None
    task_name: str | None = None
    error: str | None = None
    success: bool | None = None
    duration_ms: int | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    data: Any = None


@dataclass(frozen=True)
class RawFrame:
    """Frame text split into its event label and joined data payload."""

    event: str
    data: str | None


def split_frame(frame: str) -> RawFrame:
    """Pick the ``event:`` label and the ``data:`` lines out of one frame."""
    event = ""
    data_lines: list[str] = []
    for raw_line in frame.split("\n"):
        line = raw_line.rstrip("\r")
        if line.startswith(DATA_PREFIX):
            value = line[len(DATA_PREFIX):]
            data_lines.append(value[1:] if value.startswith(" ") else value)
        elif line.startswith(EVENT_PREFIX):
            event = line[len(EVENT_PREFIX):].strip()
        elif line.startswith(COMMENT_PREFIX):
            continue
    return RawFrame(event=event, data="\n".join(data_lines) if data_lines else None)


def _opt_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def build_event(kind: EventKind, payload: Any) -> Event:
    """Map a decoded JSON payload onto the event fields."""
    if isinstance(payload, str):
        return Event(kind=kind, content=payload, data=payload)
    if not isinstance(payload, dict):
        return Event(kind=kind, data=payload)

    duration = payload.get("duration_ms")
    success = payload.get("success")
    parameters = payload.get("parameters")
    return Event(
        kind=kind,
        content=_opt_str(payload, "content"),
        tool_name=_opt_str(payload, "tool_name"),
        label=_opt_str(payload, "label"),
        agent_subtype=_opt_str(payload, "agent_subtype"),
        task_name=_opt_str(payload, "task_name"),
        error=_opt_str(payload, "error"),
        success=success if isinstance(success, bool) else None,
        duration_ms=int(duration) if isinstance(duration, (int, float)) else None,
        parameters=parameters if isinstance(parameters, dict) else {},
        data=payload,
    )


def parse_frame(frame: str) -> Event | None:
    """Parse one frame into an event.

    The kind comes from the ``event:`` line, or from the payload's ``type``
    field when the frame has no label. Frames without data, with invalid
    JSON or with an unknown kind yield ``None``.
    """
    raw = split_frame(frame)
    if raw.data is None:
        return None

    try:
        payload = json.loads(raw.data)
    except json.JSONDecodeError:
        logger.debug(f"[stream] Skipping frame with malformed payload ({len(raw.data)} chars)")
        return None

    name = raw.event
    if not name and isinstance(payload, dict):
        name = _opt_str(payload, "type") or ""

    kind = _KINDS_BY_NAME.get(name)
    if kind is None:
        logger.debug(f"[stream] Skipping frame with unknown event kind {name!r}")
        return None
    return build_event(kind, payload)
