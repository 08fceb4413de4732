"""Tests for AgentMemory — day-bucketed append, search and listing."""

import zoneinfo
from datetime import UTC, datetime, timedelta

import pytest

from council.errors import InvalidInputError
from council.memory.models import MemoryContent, MemoryDocument, MemoryPage
from council.memory.store import AgentMemory
from tests.fakes import FakeMemoryIndex, FixedClock

# -- append --------------------------------------------------------------------


async def test_first_append_creates_day_document(
    memory: AgentMemory, memory_index: FakeMemoryIndex
) -> None:
    result = await memory.append("a1", "  likes green tea  ")
    assert (result.index, result.id, result.entries) == ("a1", "2025-03-14", 1)

    doc = memory_index.docs["a1"]["2025-03-14"]
    assert doc.content.text == "[2025-03-14T09:30:00+00:00] likes green tea"
    assert doc.content.created_at == doc.content.updated_at == "2025-03-14T09:30:00+00:00"
    assert doc.metadata == {"agentId": "a1", "day": "2025-03-14"}


async def test_same_day_appends_share_a_document(
    memory: AgentMemory, memory_index: FakeMemoryIndex, clock: FixedClock
) -> None:
    await memory.append("a1", "first")
    clock.now += timedelta(hours=2)
    result = await memory.append("a1", "second")

    assert result.entries == 2
    doc = memory_index.docs["a1"]["2025-03-14"]
    assert doc.content.text.splitlines() == [
        "[2025-03-14T09:30:00+00:00] first",
        "[2025-03-14T11:30:00+00:00] second",
    ]
    assert doc.content.created_at == "2025-03-14T09:30:00+00:00"
    assert doc.content.updated_at == "2025-03-14T11:30:00+00:00"


async def test_different_days_get_separate_documents(
    memory: AgentMemory, memory_index: FakeMemoryIndex, clock: FixedClock
) -> None:
    await memory.append("a1", "monday")
    clock.now += timedelta(days=1)
    result = await memory.append("a1", "tuesday")

    assert result.entries == 1
    assert sorted(memory_index.docs["a1"]) == ["2025-03-14", "2025-03-15"]


async def test_agents_are_isolated(memory: AgentMemory, memory_index: FakeMemoryIndex) -> None:
    await memory.append("a1", "mine")
    await memory.append("a2", "theirs")
    assert memory_index.docs["a1"]["2025-03-14"].content.entries == 1
    assert memory_index.docs["a2"]["2025-03-14"].content.entries == 1


async def test_append_blank_rejected(memory: AgentMemory, memory_index: FakeMemoryIndex) -> None:
    with pytest.raises(InvalidInputError):
        await memory.append("a1", "   ")
    assert memory_index.docs == {}


async def test_day_follows_clock_timezone(memory_index: FakeMemoryIndex) -> None:
    tokyo = zoneinfo.ZoneInfo("Asia/Tokyo")
    late = datetime(2025, 3, 14, 23, 30, tzinfo=UTC).astimezone(tokyo)
    mem = AgentMemory(memory_index, clock=FixedClock(late))
    result = await mem.append("a1", "after midnight in Tokyo")
    assert result.id == "2025-03-15"


# -- search --------------------------------------------------------------------


async def test_search_ranks_and_limits(
    memory: AgentMemory, clock: FixedClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("council.config.settings.memory_search_limit", 2)
    await memory.append("a1", "green tea")
    clock.now += timedelta(days=1)
    await memory.append("a1", "black coffee")
    clock.now += timedelta(days=1)
    await memory.append("a1", "green tea with honey")

    matches = await memory.search("a1", "green tea honey")
    assert [m.id for m in matches] == ["2025-03-16", "2025-03-14"]
    assert matches[0].score >= matches[1].score


async def test_search_blank_rejected(memory: AgentMemory) -> None:
    with pytest.raises(InvalidInputError):
        await memory.search("a1", "  ")


async def test_search_empty_index(memory: AgentMemory) -> None:
    assert await memory.search("a1", "anything") == []


# -- list_all ------------------------------------------------------------------


async def test_list_all_newest_first(
    memory: AgentMemory, clock: FixedClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("council.config.settings.memory_page_size", 2)
    for i in range(5):
        await memory.append("a1", f"note {i}")
        clock.now += timedelta(days=1)

    documents = await memory.list_all("a1")
    assert [d.id for d in documents] == [
        "2025-03-18",
        "2025-03-17",
        "2025-03-16",
        "2025-03-15",
        "2025-03-14",
    ]


async def test_list_all_respects_page_cap(
    memory: AgentMemory, clock: FixedClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("council.config.settings.memory_page_size", 1)
    monkeypatch.setattr("council.config.settings.memory_max_pages", 2)
    for i in range(4):
        await memory.append("a1", f"note {i}")
        clock.now += timedelta(days=1)

    assert len(await memory.list_all("a1")) == 2


class _LoopingIndex(FakeMemoryIndex):
    """Hands back the same cursor forever."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    async def range(self, agent_id: str, cursor: str, limit: int) -> MemoryPage:
        self.calls += 1
        doc = MemoryDocument(
            id=f"2025-01-0{self.calls}",
            content=MemoryContent(text="x", day="", created_at="", updated_at=""),
        )
        return MemoryPage(documents=[doc], next_cursor="7")


async def test_list_all_stops_on_repeated_cursor(clock: FixedClock) -> None:
    index = _LoopingIndex()
    documents = await AgentMemory(index, clock=clock).list_all("a1")
    assert index.calls == 2
    assert [d.id for d in documents] == ["2025-01-02", "2025-01-01"]


async def test_list_all_empty(memory: AgentMemory) -> None:
    assert await memory.list_all("a1") == []


# -- reset ---------------------------------------------------------------------


async def test_reset_removes_only_that_agent(
    memory: AgentMemory, memory_index: FakeMemoryIndex
) -> None:
    await memory.append("a1", "one")
    await memory.append("a2", "two")
    await memory.reset("a1")
    assert await memory.list_all("a1") == []
    assert len(await memory.list_all("a2")) == 1
