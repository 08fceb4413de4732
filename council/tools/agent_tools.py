"""Tools that let an agent inspect the council and rewrite itself."""

from pydantic import Field

from council.tools.base import ToolContext, ToolParams, ToolResult
from council.tools.registry import registry

# -- agents_list ---------------------------------------------------------------


@registry.tool(
    name="agents_list",
    description="Get the list of all agents with id and name.",
    category="agents",
)
async def agents_list(ctx: ToolContext) -> ToolResult:
    agents = await ctx.store.list_agents()
    return ToolResult(data={"agents": [a.model_dump() for a in agents]})


# -- sessions_list -------------------------------------------------------------


@registry.tool(
    name="sessions_list",
    description="List this agent's conversation sessions. 'default' is always first.",
    category="agents",
)
async def sessions_list(ctx: ToolContext) -> ToolResult:
    sessions = await ctx.store.list_sessions(ctx.agent_id)
    return ToolResult(data={
        "sessions": [s.id for s in sessions],
        "current": ctx.session_id,
    })


# -- agent_update_system_prompt ------------------------------------------------


class UpdateSystemPromptParams(ToolParams):
    system_prompt: str = Field(description="The new complete system prompt for this agent.")


@registry.tool(
    name="agent_update_system_prompt",
    description=(
        "Update this agent's system prompt. Use when asked to change behavior, "
        "tone, or operating rules."
    ),
    category="agents",
    params_model=UpdateSystemPromptParams,
)
async def agent_update_system_prompt(system_prompt: str, ctx: ToolContext) -> ToolResult:
    await ctx.store.update_system_prompt(ctx.agent_id, system_prompt)
    return ToolResult(data={"ok": True, "message": "System prompt updated successfully."})
