"""AgentStore — agents, sessions, transcripts and usage on the key/value store.

Key layout (``<ns>`` is ``settings.key_prefix``)::

    <ns>:agents                                   set of agent ids
    <ns>:agent:<agentId>                          hash: id, name, systemPrompt, mcpServers, ...
    <ns>:agent:<agentId>:sessions                 set of session ids
    <ns>:agent:<agentId>:session:<sessionId>      hash: timestamps + usage counters
    <ns>:agent:<agentId>:session:<sessionId>:messages   list of JSON messages
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from council.agents.models import (
    DEFAULT_SESSION_ID,
    Agent,
    Message,
    RemoteToolServer,
    Session,
    TokenUsage,
)
from council.config import settings
from council.errors import ConflictError, InvalidInputError, NotFoundError
from council.llm.prompt import load_bootstrap_prompt

if TYPE_CHECKING:
    from council.db import KeyValueStore

logger = logging.getLogger(__name__)

_USAGE_FIELDS = {
    "input_tokens": "usageInputTokens",
    "reasoning_tokens": "usageReasoningTokens",
    "output_tokens": "usageOutputTokens",
    "total_tokens": "usageTotalTokens",
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ())) or "server"
    return f"Invalid MCP server {where}: {first.get('msg', 'invalid value')}"


def parse_stored_servers(value: Any) -> list[RemoteToolServer]:
    """Decode the ``mcpServers`` field of an agent record.

    Accepts a JSON string, a list, or a mapping of objects. Entries that
    don't validate are skipped so one corrupt record can't lock the agent out.
    """
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Stored MCP server list is not valid JSON; ignoring it")
            return []
    if isinstance(value, dict) and all(isinstance(v, dict) for v in value.values()):
        value = list(value.values())
    if not isinstance(value, list):
        return []

    servers: list[RemoteToolServer] = []
    for item in value:
        try:
            servers.append(RemoteToolServer.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed stored MCP server entry: %r", item)
    return servers


def normalize_server(payload: Any) -> RemoteToolServer:
    """Validate a caller-supplied server config, raising InvalidInputError."""
    if isinstance(payload, RemoteToolServer):
        payload = payload.model_dump()
    if not isinstance(payload, dict):
        msg = "MCP server payload must be an object"
        raise InvalidInputError(msg)
    try:
        return RemoteToolServer.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(_validation_message(exc)) from exc


class AgentStore:
    """Registry of agents and their sessions.

    Build one per process around a shared ``KeyValueStore`` and pass it to
    whatever needs it.
    """

    def __init__(self, kv: KeyValueStore, key_prefix: str | None = None) -> None:
        self._kv = kv
        self._prefix = key_prefix or settings.key_prefix

    # -- Keys ------------------------------------------------------------------

    def _agents_index_key(self) -> str:
        return f"{self._prefix}:agents"

    def _agent_key(self, agent_id: str) -> str:
        return f"{self._prefix}:agent:{agent_id}"

    def _sessions_key(self, agent_id: str) -> str:
        return f"{self._agent_key(agent_id)}:sessions"

    def _session_key(self, agent_id: str, session_id: str) -> str:
        return f"{self._agent_key(agent_id)}:session:{session_id}"

    def _messages_key(self, agent_id: str, session_id: str) -> str:
        return f"{self._session_key(agent_id, session_id)}:messages"

    # -- Internal helpers ------------------------------------------------------

    async def _require_agent(self, agent_id: str) -> dict[str, str]:
        record = await self._kv.hgetall(self._agent_key(agent_id))
        if not record.get("id") or not record.get("name"):
            msg = f"Agent not found: {agent_id}"
            raise NotFoundError(msg)
        return record

    async def _ensure_session(self, agent_id: str, session_id: str, timestamp: str) -> None:
        """Create the session record on first reference, otherwise touch it."""
        key = self._session_key(agent_id, session_id)
        already_exists = await self._kv.exists(key)
        await self._kv.sadd(self._sessions_key(agent_id), session_id)
        if already_exists:
            await self._kv.hset(key, {"updatedAt": timestamp})
        else:
            await self._kv.hset(
                key,
                {
                    "id": session_id,
                    "agentId": agent_id,
                    "createdAt": timestamp,
                    "updatedAt": timestamp,
                    **{field: 0 for field in _USAGE_FIELDS.values()},
                },
            )
        await self._kv.hset(self._agent_key(agent_id), {"updatedAt": timestamp})

    async def _save_servers(self, agent_id: str, servers: list[RemoteToolServer]) -> None:
        await self._kv.hset(
            self._agent_key(agent_id),
            {
                "mcpServers": json.dumps([s.model_dump() for s in servers]),
                "updatedAt": _now(),
            },
        )

    # -- Agents ----------------------------------------------------------------

    async def create_agent(self, agent_id: str, name: str) -> Agent:
        """Create an agent with the bootstrap prompt and its default session."""
        agent_id = (agent_id or "").strip()
        name = (name or "").strip()
        if not name:
            msg = "Agent name is required"
            raise InvalidInputError(msg)
        if not agent_id:
            msg = "Agent id is required"
            raise InvalidInputError(msg)
        if await self._kv.exists(self._agent_key(agent_id)):
            msg = f"Agent id already exists: {agent_id}"
            raise ConflictError(msg)

        created_at = _now()
        bootstrap = load_bootstrap_prompt()
        await self._kv.hset(
            self._agent_key(agent_id),
            {
                "id": agent_id,
                "name": name,
                "systemPrompt": bootstrap,
                "mcpServers": "[]",
                "createdAt": created_at,
                "updatedAt": created_at,
            },
        )
        await self._kv.sadd(self._agents_index_key(), agent_id)
        await self._ensure_session(agent_id, DEFAULT_SESSION_ID, created_at)
        logger.info("Created agent %s (%s)", agent_id, name)
        return Agent(id=agent_id, name=name)

    async def list_agents(self) -> list[Agent]:
        """All agents, sorted by display name."""
        agents = []
        for agent_id in await self._kv.smembers(self._agents_index_key()):
            record = await self._kv.hgetall(self._agent_key(agent_id))
            if record.get("id") and record.get("name"):
                agents.append(Agent(id=record["id"], name=record["name"]))
        return sorted(agents, key=lambda a: a.name)

    async def get_system_prompt(self, agent_id: str) -> str:
        record = await self._require_agent(agent_id)
        return record.get("systemPrompt") or load_bootstrap_prompt()

    async def update_system_prompt(self, agent_id: str, system_prompt: str) -> None:
        prompt = (system_prompt or "").strip()
        if not prompt:
            msg = "System prompt is required"
            raise InvalidInputError(msg)
        await self._require_agent(agent_id)
        await self._kv.hset(
            self._agent_key(agent_id), {"systemPrompt": prompt, "updatedAt": _now()}
        )
        logger.info("Updated system prompt for agent %s (%d chars)", agent_id, len(prompt))

    async def reset_system_prompt(self, agent_id: str) -> None:
        """Restore the bootstrap prompt."""
        await self._require_agent(agent_id)
        await self._kv.hset(
            self._agent_key(agent_id),
            {"systemPrompt": load_bootstrap_prompt(), "updatedAt": _now()},
        )
        logger.info("Reset system prompt for agent %s", agent_id)

    # -- Sessions --------------------------------------------------------------

    async def list_sessions(self, agent_id: str) -> list[Session]:
        """Sessions of an agent, ``default`` first and the rest sorted."""
        await self._require_agent(agent_id)
        ids = await self._kv.smembers(self._sessions_key(agent_id))
        if not ids:
            await self._ensure_session(agent_id, DEFAULT_SESSION_ID, _now())
            return [Session(id=DEFAULT_SESSION_ID)]
        ordered = sorted(ids, key=lambda sid: (sid != DEFAULT_SESSION_ID, sid))
        return [Session(id=sid) for sid in ordered]

    # -- Transcript ------------------------------------------------------------

    async def append_message(self, agent_id: str, session_id: str, message: Message) -> Message:
        await self.append_messages(agent_id, session_id, [message])
        return message

    async def append_messages(
        self, agent_id: str, session_id: str, messages: list[Message]
    ) -> None:
        """Append a batch to the end of the session log in one write."""
        if not messages:
            return
        await self._require_agent(agent_id)
        timestamp = _now()
        await self._ensure_session(agent_id, session_id, timestamp)
        await self._kv.rpush(
            self._messages_key(agent_id, session_id),
            *(m.model_dump_json() for m in messages),
        )
        await self._kv.hset(
            self._session_key(agent_id, session_id),
            {"updatedAt": timestamp, "lastMessageAt": timestamp},
        )

    async def get_messages(self, agent_id: str, session_id: str) -> list[Message]:
        await self._require_agent(agent_id)
        raw = await self._kv.lrange(self._messages_key(agent_id, session_id))
        return [Message.model_validate_json(item) for item in raw]

    async def clear_messages(self, agent_id: str, session_id: str) -> None:
        """Empty the log and zero the usage counters; the session stays."""
        await self._require_agent(agent_id)
        timestamp = _now()
        await self._ensure_session(agent_id, session_id, timestamp)
        await self._kv.delete(self._messages_key(agent_id, session_id))
        await self._kv.hset(
            self._session_key(agent_id, session_id),
            {"updatedAt": timestamp, **{field: 0 for field in _USAGE_FIELDS.values()}},
        )
        logger.info("Cleared session %s/%s", agent_id, session_id)

    async def start_fresh(self, agent_id: str) -> None:
        await self.clear_messages(agent_id, DEFAULT_SESSION_ID)

    # -- Usage -----------------------------------------------------------------

    async def get_usage(self, agent_id: str, session_id: str) -> TokenUsage:
        await self._require_agent(agent_id)
        record = await self._kv.hgetall(self._session_key(agent_id, session_id))
        return TokenUsage(
            **{attr: _as_int(record.get(field)) for attr, field in _USAGE_FIELDS.items()}
        )

    async def add_usage(self, agent_id: str, session_id: str, delta: TokenUsage) -> TokenUsage:
        """Add a turn's usage to the session totals in a single update."""
        await self._require_agent(agent_id)
        await self._ensure_session(agent_id, session_id, _now())
        key = self._session_key(agent_id, session_id)
        totals = await self._kv.hincrby(
            key,
            {field: max(getattr(delta, attr), 0) for attr, field in _USAGE_FIELDS.items()},
        )
        return TokenUsage(**{attr: totals.get(field, 0) for attr, field in _USAGE_FIELDS.items()})

    # -- Remote tool servers ---------------------------------------------------

    async def list_servers(self, agent_id: str) -> list[RemoteToolServer]:
        record = await self._require_agent(agent_id)
        return parse_stored_servers(record.get("mcpServers"))

    async def add_server(self, agent_id: str, payload: Any) -> list[RemoteToolServer]:
        servers = await self.list_servers(agent_id)
        server = normalize_server(payload)
        if any(s.id == server.id for s in servers):
            msg = f"MCP server id already exists: {server.id}"
            raise ConflictError(msg)
        updated = sorted([*servers, server], key=lambda s: s.name)
        await self._save_servers(agent_id, updated)
        logger.info("Added MCP server %s to agent %s", server.id, agent_id)
        return updated

    async def update_server(
        self, agent_id: str, server_id: str, payload: Any
    ) -> list[RemoteToolServer]:
        servers = await self.list_servers(agent_id)
        target_id = (server_id or "").strip()
        if not target_id:
            msg = "MCP server id is required"
            raise InvalidInputError(msg)
        index = next((i for i, s in enumerate(servers) if s.id == target_id), None)
        if index is None:
            msg = f"MCP server not found: {target_id}"
            raise NotFoundError(msg)
        server = normalize_server(payload)
        if any(s.id == server.id and s.id != target_id for s in servers):
            msg = f"MCP server id already exists: {server.id}"
            raise ConflictError(msg)
        updated = list(servers)
        updated[index] = server
        updated.sort(key=lambda s: s.name)
        await self._save_servers(agent_id, updated)
        return updated

    async def delete_server(self, agent_id: str, server_id: str) -> list[RemoteToolServer]:
        servers = await self.list_servers(agent_id)
        target_id = (server_id or "").strip()
        if not target_id:
            msg = "MCP server id is required"
            raise InvalidInputError(msg)
        updated = [s for s in servers if s.id != target_id]
        if len(updated) == len(servers):
            msg = f"MCP server not found: {target_id}"
            raise NotFoundError(msg)
        updated.sort(key=lambda s: s.name)
        await self._save_servers(agent_id, updated)
        logger.info("Deleted MCP server %s from agent %s", target_id, agent_id)
        return updated
