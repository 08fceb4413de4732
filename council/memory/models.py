"""Data models for the per-agent memory index."""

from pydantic import BaseModel


class MemoryContent(BaseModel):
    """The body of one day's memory document."""

    text: str
    day: str
    created_at: str
    updated_at: str
    entries: int = 0


class MemoryDocument(BaseModel):
    """One calendar day of notes, keyed by ``YYYY-MM-DD``."""

    id: str
    content: MemoryContent
    metadata: dict[str, str] = {}


class MemoryMatch(BaseModel):
    """A search hit with its relevance score."""

    id: str
    score: float
    content: MemoryContent
    metadata: dict[str, str] = {}


class MemoryPage(BaseModel):
    """One page of a cursor-based range scan. Empty ``next_cursor`` ends it."""

    documents: list[MemoryDocument]
    next_cursor: str = ""


class AppendResult(BaseModel):
    index: str
    id: str
    entries: int
