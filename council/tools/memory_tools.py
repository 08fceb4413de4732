"""Memory tools — append to and search the agent's day-bucketed memory."""

from pydantic import Field

from council.tools.base import ToolContext, ToolParams, ToolResult
from council.tools.registry import registry

# -- memory_append -------------------------------------------------------------


class MemoryAppendParams(ToolParams):
    content: str = Field(description="The information to remember")


@registry.tool(
    name="memory_append",
    description=(
        "Store something in long-term memory. Entries are grouped into one "
        "document per day. Use when the user says 'remember X', 'save this', "
        "or when you learn something worth keeping across sessions."
    ),
    category="memory",
    params_model=MemoryAppendParams,
)
async def memory_append(content: str, ctx: ToolContext) -> ToolResult:
    result = await ctx.memory.append(ctx.agent_id, content)
    return ToolResult(data=result.model_dump())


# -- memory_search -------------------------------------------------------------


class MemorySearchParams(ToolParams):
    query: str = Field(description="What to search for in memory")


@registry.tool(
    name="memory_search",
    description=(
        "Search long-term memory. Returns the most relevant days of notes. "
        "Use when the user asks 'what do you remember about X' or when you "
        "need to check if you have relevant context."
    ),
    category="memory",
    params_model=MemorySearchParams,
)
async def memory_search(query: str, ctx: ToolContext) -> ToolResult:
    matches = await ctx.memory.search(ctx.agent_id, query)
    results = [
        {"day": m.id, "text": m.content.text, "score": m.score}
        for m in matches
    ]
    return ToolResult(data={"results": results, "count": len(results)})
