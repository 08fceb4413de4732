"""Base types for the tool-calling framework."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from council.agents.store import AgentStore
    from council.memory.store import AgentMemory


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. The model client records it as a
    tool-result part and feeds it back for the next round.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_output(self) -> dict[str, Any]:
        """The value recorded in the transcript's tool-result part."""
        if self.error:
            return {"error": self.error}
        return self.data or {}


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the model's tool definitions.
    """


@dataclass
class ToolContext:
    """Who a tool is running for, and the services it may touch.

    Handlers that declare a ``ctx`` parameter get this injected.
    """

    agent_id: str
    session_id: str
    store: AgentStore
    memory: AgentMemory
