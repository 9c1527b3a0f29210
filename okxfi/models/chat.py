from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

ChatRole = Literal["user", "assistant", "tool"]
ChatMode = Literal["SAK_AGENT_NLP", "OKX_API_AGENT_NLP"]
CHAT_MODES: tuple[str, ...] = ("SAK_AGENT_NLP", "OKX_API_AGENT_NLP")


class ChatMessage(BaseModel):
    """One persisted or returned chat turn entry."""

    role: ChatRole
    content: str
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    # Set on assistant messages that announce a tool call, so the call can be
    # replayed to the model as a structured tool_calls entry.
    tool_input: Optional[str] = None

    @model_validator(mode="after")
    def require_tool_identity(self) -> "ChatMessage":
        if self.role == "tool" and not (self.name and self.tool_call_id):
            msg = "tool messages require both name and tool_call_id"
            raise ValueError(msg)
        return self

    def to_public(self) -> dict:
        return self.model_dump(exclude_none=True)


class ChatRequest(BaseModel):
    message: str
    session_id: str = Field(alias="sessionId")
    mode: ChatMode


class ChatResponse(BaseModel):
    responses: list[ChatMessage]


class CommandInfo(BaseModel):
    name: str
    ui_description: str
    llm_tool_description: str
    example: str
    required_params: list[str] = Field(default_factory=list, serialization_alias="requiredParams")


__all__ = [
    "CHAT_MODES",
    "ChatMessage",
    "ChatMode",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "CommandInfo",
]
