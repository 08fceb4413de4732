"""Process-wide service container, built once at startup."""

from __future__ import annotations

from dataclasses import dataclass

from council.agents.store import AgentStore
from council.chat.turn import ConversationDriver
from council.config import settings
from council.db import KeyValueStore
from council.llm.client import ClaudeModel
from council.memory.index import ChromaMemoryIndex
from council.memory.store import AgentMemory


@dataclass
class Services:
    store: AgentStore
    memory: AgentMemory
    driver: ConversationDriver

    @classmethod
    def from_settings(cls) -> Services:
        """Wire the real backends from ``settings``."""
        store = AgentStore(KeyValueStore(settings.database_path))
        memory = AgentMemory(ChromaMemoryIndex(settings.memory_path))
        driver = ConversationDriver(store, memory, ClaudeModel())
        return cls(store=store, memory=memory, driver=driver)

    async def aclose(self) -> None:
        await self.driver.aclose()
