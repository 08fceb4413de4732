"""Async Claude API client with streaming and tool-calling loop."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anthropic

from council.agents.models import (
    Message,
    TextPart,
    TokenUsage,
    ToolCallPart,
    ToolResultPart,
)
from council.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from council.tools.base import ToolContext
    from council.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Everything one turn produced.

    ``messages`` holds the assistant and tool messages in the order the
    loop created them, ready to append to the transcript.
    """

    text: str = ""
    messages: list[Message] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    rounds: int = 0


def to_api_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert transcript messages to Claude API message dicts.

    Tool-role messages become user turns of ``tool_result`` blocks.
    Approval records are not sent; messages left with no content are dropped.
    """
    api_messages: list[dict[str, Any]] = []
    for message in messages:
        role = "assistant" if message.role == "assistant" else "user"
        if isinstance(message.content, str):
            if message.content:
                api_messages.append({"role": role, "content": message.content})
            continue

        blocks: list[dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, TextPart):
                if part.text:
                    blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ToolCallPart):
                blocks.append({
                    "type": "tool_use",
                    "id": part.tool_call_id,
                    "name": part.tool_name,
                    "input": part.input,
                })
            elif isinstance(part, ToolResultPart):
                output = part.output
                blocks.append({
                    "type": "tool_result",
                    "tool_use_id": part.tool_call_id,
                    "content": output if isinstance(output, str) else json.dumps(output),
                    "is_error": part.is_error,
                })
        if blocks:
            api_messages.append({"role": role, "content": blocks})
    return api_messages


def _assistant_message(content: list[Any]) -> Message:
    """Build the transcript message for one model response."""
    parts: list[TextPart | ToolCallPart] = []
    for block in content:
        if block.type == "text":
            parts.append(TextPart(text=block.text))
        elif block.type == "tool_use":
            parts.append(
                ToolCallPart(tool_call_id=block.id, tool_name=block.name, input=block.input or {})
            )
    if all(isinstance(p, TextPart) for p in parts):
        return Message(role="assistant", content="".join(p.text for p in parts))
    return Message(role="assistant", content=parts)


def _usage_of(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    input_tokens = getattr(usage, "input_tokens", 0) or 0
    output_tokens = getattr(usage, "output_tokens", 0) or 0
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
    )


class ClaudeModel:
    """The model capability: streamed, tool-calling generation.

    Pass *client* to substitute the Anthropic client (tests do).
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        model: str | None = None,
        max_rounds: int | None = None,
    ) -> None:
        self._client = client or anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout_seconds,
        )
        self.model = model or settings.claude_model
        self.max_rounds = max_rounds or settings.max_tool_rounds

    async def generate_response(
        self,
        messages: list[Message],
        *,
        system: str,
        tools: ToolRegistry,
        ctx: ToolContext | None = None,
        on_text_delta: Callable[[str], Awaitable[None]] | None = None,
    ) -> GenerationResult:
        """Generate a response with full tool-calling loop.

        Streams text to the caller via ``on_text_delta``. When Claude calls
        tools, they are executed in order and the results fed back. The loop
        ends on a round with no tool calls or after ``max_rounds`` rounds.

        Args:
            messages: Conversation history, oldest first.
            system: The agent's system prompt.
            tools: The turn's tool set.
            ctx: Injected into tools that ask for it.
            on_text_delta: Async callback receiving each text chunk.

        Returns:
            The streamed text, the new transcript messages, and summed usage.
        """
        tool_schemas = tools.get_schemas()
        loop_messages = to_api_messages(messages)
        result = GenerationResult()

        for round_num in range(self.max_rounds):
            kwargs: dict[str, Any] = {
                "model": self.model,
                "max_tokens": settings.max_output_tokens,
                "system": system,
                "messages": loop_messages,
            }
            if tool_schemas:
                kwargs["tools"] = tool_schemas

            async with self._client.messages.stream(**kwargs) as stream:
                first_chunk = True
                async for text in stream.text_stream:
                    # Keep successive rounds' text from running together.
                    needs_break = result.text and not result.text.endswith("\n")
                    if first_chunk and round_num > 0 and needs_break:
                        result.text += "\n\n"
                        if on_text_delta:
                            await on_text_delta("\n\n")
                    first_chunk = False
                    result.text += text
                    if on_text_delta:
                        await on_text_delta(text)

                response = await stream.get_final_message()

            result.rounds = round_num + 1
            result.usage = result.usage + _usage_of(response)
            assistant = _assistant_message(response.content)
            result.messages.append(assistant)

            tool_calls = assistant.tool_calls
            if not tool_calls:
                return result

            logger.info(
                "Round %d: %d tool call(s): %s",
                round_num + 1,
                len(tool_calls),
                ", ".join(c.tool_name for c in tool_calls),
            )
            loop_messages.extend(to_api_messages([assistant]))

            tool_parts: list[ToolResultPart] = []
            for call in tool_calls:
                outcome = await tools.execute(call.tool_name, call.input, ctx=ctx)
                tool_parts.append(
                    ToolResultPart(
                        tool_call_id=call.tool_call_id,
                        tool_name=call.tool_name,
                        output=outcome.to_output(),
                        is_error=not outcome.success,
                    )
                )

            tool_message = Message(role="tool", content=tool_parts)
            result.messages.append(tool_message)
            loop_messages.extend(to_api_messages([tool_message]))

        logger.warning("Hit max tool rounds (%d)", self.max_rounds)
        return result
