"""Tests for the local agent and memory tools."""

import pytest

from council.agents.store import AgentStore
from council.memory.store import AgentMemory
from council.tools import registry
from council.tools.base import ToolContext


@pytest.fixture
async def ctx(store: AgentStore, memory: AgentMemory) -> ToolContext:
    await store.create_agent("a1", "Alpha")
    return ToolContext(agent_id="a1", session_id="default", store=store, memory=memory)


def test_local_tools_registered() -> None:
    assert {
        "agents_list",
        "sessions_list",
        "agent_update_system_prompt",
        "memory_append",
        "memory_search",
    } <= set(registry.tool_names)


# -- agents_list ---------------------------------------------------------------


async def test_agents_list(ctx: ToolContext, store: AgentStore) -> None:
    await store.create_agent("b1", "Beta")
    result = await registry.execute("agents_list", {}, ctx=ctx)
    assert result.data == {
        "agents": [{"id": "a1", "name": "Alpha"}, {"id": "b1", "name": "Beta"}]
    }


# -- sessions_list -------------------------------------------------------------


async def test_sessions_list(ctx: ToolContext) -> None:
    result = await registry.execute("sessions_list", {}, ctx=ctx)
    assert result.data == {"sessions": ["default"], "current": "default"}


# -- agent_update_system_prompt ------------------------------------------------


async def test_update_system_prompt(ctx: ToolContext, store: AgentStore) -> None:
    result = await registry.execute(
        "agent_update_system_prompt", {"system_prompt": "Speak like a pirate."}, ctx=ctx
    )
    assert result.success
    assert await store.get_system_prompt("a1") == "Speak like a pirate."


async def test_update_system_prompt_blank_is_tool_error(
    ctx: ToolContext, store: AgentStore, bootstrap_text: str
) -> None:
    result = await registry.execute("agent_update_system_prompt", {"system_prompt": " "}, ctx=ctx)
    assert not result.success
    assert "required" in result.error
    assert await store.get_system_prompt("a1") == bootstrap_text


# -- memory_append / memory_search ---------------------------------------------


async def test_memory_append(ctx: ToolContext) -> None:
    result = await registry.execute("memory_append", {"content": "likes tea"}, ctx=ctx)
    assert result.data == {"index": "a1", "id": "2025-03-14", "entries": 1}


async def test_memory_search(ctx: ToolContext) -> None:
    await registry.execute("memory_append", {"content": "likes green tea"}, ctx=ctx)
    result = await registry.execute("memory_search", {"query": "green tea"}, ctx=ctx)
    assert result.data["count"] == 1
    hit = result.data["results"][0]
    assert hit["day"] == "2025-03-14"
    assert "likes green tea" in hit["text"]
    assert hit["score"] > 0


async def test_memory_search_blank_is_tool_error(ctx: ToolContext) -> None:
    result = await registry.execute("memory_search", {"query": "  "}, ctx=ctx)
    assert not result.success
