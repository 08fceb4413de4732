"""Per-agent day-bucketed memory on top of a semantic index.

Each agent gets one document per calendar day. Appending adds a
timestamped line to that day's document and bumps its entry counter;
search and recall then work at day granularity.
"""

from __future__ import annotations

import logging
import zoneinfo
from datetime import datetime
from typing import TYPE_CHECKING

from council.config import settings
from council.errors import InvalidInputError
from council.memory.models import AppendResult, MemoryContent, MemoryDocument, MemoryMatch

if TYPE_CHECKING:
    from collections.abc import Callable

    from council.memory.index import MemoryIndex

logger = logging.getLogger(__name__)


def _default_clock() -> datetime:
    return datetime.now(zoneinfo.ZoneInfo(settings.memory_timezone))


class AgentMemory:
    """Append/search/list operations over an agent's memory index.

    *clock* returns the current time; tests pass a fixed one to simulate
    calendar days.
    """

    def __init__(
        self,
        index: MemoryIndex,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._index = index
        self._clock = clock or _default_clock

    async def append(self, agent_id: str, text: str) -> AppendResult:
        """Add an entry to today's document, creating it if needed."""
        content = (text or "").strip()
        if not content:
            msg = "Memory content is required"
            raise InvalidInputError(msg)

        now = self._clock()
        stamp = now.isoformat()
        day = now.date().isoformat()

        existing = await self._index.fetch(agent_id, [day])
        previous = existing[0].content if existing else None

        line = f"[{stamp}] {content}"
        previous_text = previous.text.strip() if previous else ""
        entries = (previous.entries if previous else 0) + 1

        await self._index.upsert(
            agent_id,
            MemoryDocument(
                id=day,
                content=MemoryContent(
                    text=f"{previous_text}\n{line}" if previous_text else line,
                    day=day,
                    created_at=previous.created_at if previous else stamp,
                    updated_at=stamp,
                    entries=entries,
                ),
                metadata={"agentId": agent_id, "day": day},
            ),
        )
        logger.debug("Stored memory for %s on %s (entry %d)", agent_id, day, entries)
        return AppendResult(index=agent_id, id=day, entries=entries)

    async def search(self, agent_id: str, query: str) -> list[MemoryMatch]:
        """Top matches for *query*, best first."""
        query = (query or "").strip()
        if not query:
            msg = "Memory search query is required"
            raise InvalidInputError(msg)
        matches = await self._index.search(agent_id, query, settings.memory_search_limit)
        return sorted(matches, key=lambda m: m.score, reverse=True)[: settings.memory_search_limit]

    async def list_all(self, agent_id: str) -> list[MemoryDocument]:
        """Every document, newest day first.

        Pagination is capped at ``settings.memory_max_pages`` and stops early
        if the backend hands back a cursor it has already returned.
        """
        documents: list[MemoryDocument] = []
        seen: set[str] = set()
        cursor = "0"
        for _ in range(settings.memory_max_pages):
            if cursor in seen:
                logger.warning("Memory range for %s repeated cursor %s", agent_id, cursor)
                break
            seen.add(cursor)
            page = await self._index.range(agent_id, cursor, settings.memory_page_size)
            documents.extend(page.documents)
            if not page.next_cursor:
                break
            cursor = page.next_cursor
        return sorted(documents, key=lambda d: d.id, reverse=True)

    async def reset(self, agent_id: str) -> None:
        """Delete all of an agent's memory."""
        await self._index.reset(agent_id)
