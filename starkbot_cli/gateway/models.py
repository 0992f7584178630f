"""Response schemas for the instance gateway API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _GatewayModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ChatResponse(_GatewayModel):
    success: bool = False
    response: str | None = None
    session_id: int | None = None
    error: str | None = None


class SessionInfo(_GatewayModel):
    id: int
    session_key: str = ""
    created_at: str = ""
    last_activity_at: str = ""
    message_count: int = 0


class SessionsResponse(_GatewayModel):
    success: bool = False
    sessions: list[SessionInfo] = Field(default_factory=list)


class MessageInfo(_GatewayModel):
    role: str
    content: str = ""
    user_name: str | None = None
    created_at: str = ""


class MessagesResponse(_GatewayModel):
    success: bool = False
    messages: list[MessageInfo] = Field(default_factory=list)


class NewSessionResponse(_GatewayModel):
    success: bool = False
    session_id: int | None = None


class ModuleInfo(_GatewayModel):
    """An installed instance module."""

    name: str
    description: str = ""
    version: str = ""
    has_tui: bool = False
    dashboard_style: str | None = None
    enabled: bool = True

    @property
    def supports_tui(self) -> bool:
        return self.has_tui or self.dashboard_style == "tui"
