"""Tests for ChromaMemoryIndex against an embedded ChromaDB."""

import hashlib
import math
import uuid
from pathlib import Path

import pytest
from chromadb import Documents, EmbeddingFunction, Embeddings

from council.memory.index import ChromaMemoryIndex
from council.memory.models import MemoryContent, MemoryDocument


class _WordHashEmbedding(EmbeddingFunction):
    """Deterministic bag-of-words embedding; no model download."""

    def __init__(self) -> None:
        pass

    def __call__(self, input: Documents) -> Embeddings:  # noqa: A002
        vectors = []
        for text in input:
            vec = [0.0] * 64
            vec[0] = 0.1
            for word in text.lower().split():
                slot = int(hashlib.md5(word.encode()).hexdigest(), 16) % 63 + 1  # noqa: S324
                vec[slot] += 1.0
            norm = math.sqrt(sum(v * v for v in vec))
            vectors.append([v / norm for v in vec])
        return vectors


@pytest.fixture
def index(tmp_path: Path) -> ChromaMemoryIndex:
    return ChromaMemoryIndex(tmp_path / "chroma", embedding_function=_WordHashEmbedding())


@pytest.fixture
def agent_id() -> str:
    return f"agent-{uuid.uuid4().hex[:8]}"


def _doc(day: str, text: str, entries: int = 1) -> MemoryDocument:
    return MemoryDocument(
        id=day,
        content=MemoryContent(
            text=text,
            day=day,
            created_at=f"{day}T09:00:00+00:00",
            updated_at=f"{day}T10:00:00+00:00",
            entries=entries,
        ),
    )


async def test_upsert_and_fetch(index: ChromaMemoryIndex, agent_id: str) -> None:
    await index.upsert(agent_id, _doc("2025-03-14", "likes green tea", entries=2))

    (doc,) = await index.fetch(agent_id, ["2025-03-14"])
    assert doc.id == "2025-03-14"
    assert doc.content.text == "likes green tea"
    assert doc.content.entries == 2
    assert doc.content.created_at == "2025-03-14T09:00:00+00:00"
    assert doc.metadata == {"agentId": agent_id, "day": "2025-03-14"}


async def test_upsert_replaces(index: ChromaMemoryIndex, agent_id: str) -> None:
    await index.upsert(agent_id, _doc("2025-03-14", "first"))
    await index.upsert(agent_id, _doc("2025-03-14", "first\nsecond", entries=2))

    (doc,) = await index.fetch(agent_id, ["2025-03-14"])
    assert doc.content.text == "first\nsecond"


async def test_fetch_missing(index: ChromaMemoryIndex, agent_id: str) -> None:
    assert await index.fetch(agent_id, ["2025-01-01"]) == []


async def test_search_ranks_closest_first(index: ChromaMemoryIndex, agent_id: str) -> None:
    await index.upsert(agent_id, _doc("2025-03-14", "likes green tea"))
    await index.upsert(agent_id, _doc("2025-03-15", "parked the car downtown"))

    matches = await index.search(agent_id, "green tea", 2)

    assert matches[0].id == "2025-03-14"
    assert matches[0].score > matches[1].score


async def test_search_empty_collection(index: ChromaMemoryIndex, agent_id: str) -> None:
    assert await index.search(agent_id, "anything", 3) == []


async def test_agents_are_isolated(index: ChromaMemoryIndex, agent_id: str) -> None:
    await index.upsert(agent_id, _doc("2025-03-14", "mine"))
    assert await index.fetch("someone-else", ["2025-03-14"]) == []


async def test_range_pages_through_everything(index: ChromaMemoryIndex, agent_id: str) -> None:
    for day in ("2025-03-14", "2025-03-15", "2025-03-16"):
        await index.upsert(agent_id, _doc(day, f"note for {day}"))

    first = await index.range(agent_id, "0", 2)
    assert len(first.documents) == 2
    assert first.next_cursor == "2"

    second = await index.range(agent_id, first.next_cursor, 2)
    assert len(second.documents) == 1
    assert second.next_cursor == ""

    ids = {d.id for d in first.documents + second.documents}
    assert ids == {"2025-03-14", "2025-03-15", "2025-03-16"}


async def test_reset(index: ChromaMemoryIndex, agent_id: str) -> None:
    await index.upsert(agent_id, _doc("2025-03-14", "mine"))
    await index.reset(agent_id)
    assert (await index.range(agent_id, "0", 10)).documents == []


async def test_reset_unknown_agent(index: ChromaMemoryIndex) -> None:
    await index.reset("never-written")
