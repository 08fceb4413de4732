"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from council.agents.store import AgentStore
from council.db import KeyValueStore
from council.llm import prompt
from council.memory.store import AgentMemory
from tests.fakes import FakeMemoryIndex, FixedClock

BOOTSTRAP_TEXT = "You are a council agent. Use memory_append to remember things."


@pytest.fixture(autouse=True)
def bootstrap(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the bootstrap prompt at a temp file and clear the cache."""
    path = tmp_path / "bootstrap.md"
    path.write_text(BOOTSTRAP_TEXT + "\n", encoding="utf-8")
    monkeypatch.setattr("council.config.settings.bootstrap_prompt_path", str(path))
    prompt._reset_cache()
    yield path
    prompt._reset_cache()


@pytest.fixture
def kv(tmp_path: Path) -> KeyValueStore:
    """KeyValueStore backed by a temp database."""
    return KeyValueStore(db_path=tmp_path / "test.db")


@pytest.fixture
def store(kv: KeyValueStore) -> AgentStore:
    return AgentStore(kv, key_prefix="test")


@pytest.fixture
def memory_index() -> FakeMemoryIndex:
    return FakeMemoryIndex()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 14, 9, 30, tzinfo=UTC))


@pytest.fixture
def memory(memory_index: FakeMemoryIndex, clock: FixedClock) -> AgentMemory:
    return AgentMemory(memory_index, clock=clock)


@pytest.fixture
def bootstrap_text() -> str:
    return BOOTSTRAP_TEXT
