"""Data models for agents, sessions, transcripts and remote tool servers."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_SESSION_ID = "default"


class Agent(BaseModel):
    id: str
    name: str


class Session(BaseModel):
    id: str


class TokenUsage(BaseModel):
    """Running token totals for a session, or the delta of a single turn."""

    input_tokens: int = 0
    reasoning_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


# -- Remote tool servers ------------------------------------------------------


class RemoteToolServer(BaseModel):
    """Connection settings for one remote (MCP) tool server.

    Accepts the loose payloads the UI and older records send: ``transport``
    may be missing or ``"streamable-http"`` (both mean ``"http"``),
    ``enabled`` defaults to true when it isn't a boolean, and header entries
    with blank names or non-string values are dropped.
    """

    id: str
    name: str
    transport: Literal["http", "sse"] = "http"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @field_validator("id", "name", "url", mode="before")
    @classmethod
    def _non_blank(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            msg = "must be a non-empty string"
            raise ValueError(msg)
        return value.strip()

    @field_validator("transport", mode="before")
    @classmethod
    def _normalize_transport(cls, value: Any) -> str:
        if value == "sse":
            return "sse"
        if value is None or value in ("http", "streamable-http"):
            return "http"
        msg = "Invalid MCP transport. Supported transports: http, sse."
        raise ValueError(msg)

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {
            str(k).strip(): v
            for k, v in value.items()
            if isinstance(v, str) and str(k).strip()
        }

    @field_validator("enabled", mode="before")
    @classmethod
    def _default_enabled(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else True


# -- Transcript ---------------------------------------------------------------


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    """The model asking for a tool to be run."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    """The outcome of a tool call, fed back to the model."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    output: Any = None
    is_error: bool = False


class ToolApprovalPart(BaseModel):
    """A recorded approve/deny decision for a tool call."""

    type: Literal["tool-approval-response"] = "tool-approval-response"
    tool_call_id: str
    approved: bool
    reason: str | None = None


MessagePart = Annotated[
    TextPart | ToolCallPart | ToolResultPart | ToolApprovalPart,
    Field(discriminator="type"),
]


class Message(BaseModel):
    """One entry in a session transcript.

    ``content`` is plain text or a list of typed parts.
    """

    role: Literal["user", "assistant", "tool"]
    content: str | list[MessagePart]

    @property
    def text(self) -> str:
        """Concatenated text of the message, ignoring tool parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ToolCallPart)]
