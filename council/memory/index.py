"""Semantic memory index backends.

``MemoryIndex`` is what ``AgentMemory`` needs from a backend: upsert by id,
fetch by ids, ranked search, and cursor-based enumeration, each scoped to one
agent. ``ChromaMemoryIndex`` implements it with an embedded ChromaDB, one
collection per agent.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Any, Protocol

import chromadb

from council.memory.models import MemoryContent, MemoryDocument, MemoryMatch, MemoryPage

logger = logging.getLogger(__name__)


class MemoryIndex(Protocol):
    async def upsert(self, agent_id: str, document: MemoryDocument) -> None: ...

    async def fetch(self, agent_id: str, ids: list[str]) -> list[MemoryDocument]: ...

    async def search(self, agent_id: str, query: str, limit: int) -> list[MemoryMatch]: ...

    async def range(self, agent_id: str, cursor: str, limit: int) -> MemoryPage: ...

    async def reset(self, agent_id: str) -> None: ...


def _collection_name(agent_id: str) -> str:
    """Chroma collection names are restricted; hash the agent id into one."""
    return "agent-" + hashlib.sha256(agent_id.encode()).hexdigest()[:32]


def _to_metadata(agent_id: str, document: MemoryDocument) -> dict[str, Any]:
    content = document.content
    return {
        "agent_id": agent_id,
        "day": content.day,
        "created_at": content.created_at,
        "updated_at": content.updated_at,
        "entries": content.entries,
    }


def _from_row(doc_id: str, text: str | None, meta: dict[str, Any] | None) -> MemoryDocument:
    meta = meta or {}
    content = MemoryContent(
        text=text or "",
        day=str(meta.get("day", doc_id)),
        created_at=str(meta.get("created_at", "")),
        updated_at=str(meta.get("updated_at", "")),
        entries=int(meta.get("entries", 0) or 0),
    )
    return MemoryDocument(
        id=doc_id,
        content=content,
        metadata={"agentId": str(meta.get("agent_id", "")), "day": content.day},
    )


class ChromaMemoryIndex:
    """Embedded ChromaDB index with cosine similarity.

    Relevance score is ``1 - cosine distance``. The range cursor is the
    stringified offset of the next page.
    """

    def __init__(
        self,
        persist_directory: str | Path | None = None,
        embedding_function: Any = None,
    ) -> None:
        if persist_directory is None:
            self._client = chromadb.EphemeralClient()
        else:
            path = Path(persist_directory).expanduser().resolve()
            path.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(path=str(path))
        self._embedding_function = embedding_function

    def _collection(self, agent_id: str) -> Any:
        kwargs: dict[str, Any] = {
            "name": _collection_name(agent_id),
            "metadata": {"hnsw:space": "cosine"},
        }
        if self._embedding_function is not None:
            kwargs["embedding_function"] = self._embedding_function
        return self._client.get_or_create_collection(**kwargs)

    # -- Sync bodies (run in a worker thread) ----------------------------------

    def _upsert_sync(self, agent_id: str, document: MemoryDocument) -> None:
        self._collection(agent_id).upsert(
            ids=[document.id],
            documents=[document.content.text],
            metadatas=[_to_metadata(agent_id, document)],
        )

    def _fetch_sync(self, agent_id: str, ids: list[str]) -> list[MemoryDocument]:
        result = self._collection(agent_id).get(ids=ids, include=["documents", "metadatas"])
        return [
            _from_row(doc_id, text, meta)
            for doc_id, text, meta in zip(
                result["ids"], result["documents"] or [], result["metadatas"] or [], strict=False
            )
        ]

    def _search_sync(self, agent_id: str, query: str, limit: int) -> list[MemoryMatch]:
        collection = self._collection(agent_id)
        if collection.count() == 0:
            return []
        result = collection.query(
            query_texts=[query],
            n_results=limit,
            include=["documents", "metadatas", "distances"],
        )
        ids = result["ids"][0] if result["ids"] else []
        texts = result["documents"][0] if result["documents"] else []
        metas = result["metadatas"][0] if result["metadatas"] else []
        distances = result["distances"][0] if result["distances"] else []

        matches = []
        for doc_id, text, meta, distance in zip(ids, texts, metas, distances, strict=False):
            doc = _from_row(doc_id, text, meta)
            matches.append(
                MemoryMatch(
                    id=doc.id,
                    score=1.0 - float(distance),
                    content=doc.content,
                    metadata=doc.metadata,
                )
            )
        return matches

    def _range_sync(self, agent_id: str, cursor: str, limit: int) -> MemoryPage:
        offset = int(cursor or 0)
        result = self._collection(agent_id).get(
            limit=limit, offset=offset, include=["documents", "metadatas"]
        )
        documents = [
            _from_row(doc_id, text, meta)
            for doc_id, text, meta in zip(
                result["ids"], result["documents"] or [], result["metadatas"] or [], strict=False
            )
        ]
        next_cursor = str(offset + len(documents)) if len(documents) == limit else ""
        return MemoryPage(documents=documents, next_cursor=next_cursor)

    def _reset_sync(self, agent_id: str) -> None:
        name = _collection_name(agent_id)
        self._collection(agent_id)
        self._client.delete_collection(name=name)

    # -- MemoryIndex -----------------------------------------------------------

    async def upsert(self, agent_id: str, document: MemoryDocument) -> None:
        await asyncio.to_thread(self._upsert_sync, agent_id, document)

    async def fetch(self, agent_id: str, ids: list[str]) -> list[MemoryDocument]:
        return await asyncio.to_thread(self._fetch_sync, agent_id, ids)

    async def search(self, agent_id: str, query: str, limit: int) -> list[MemoryMatch]:
        return await asyncio.to_thread(self._search_sync, agent_id, query, limit)

    async def range(self, agent_id: str, cursor: str, limit: int) -> MemoryPage:
        return await asyncio.to_thread(self._range_sync, agent_id, cursor, limit)

    async def reset(self, agent_id: str) -> None:
        await asyncio.to_thread(self._reset_sync, agent_id)
        logger.info("Reset memory index for agent %s", agent_id)
