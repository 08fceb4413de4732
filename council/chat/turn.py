"""Conversation turns: persist, assemble, generate, stream, finalize, clean up.

A turn runs as its own asyncio task. The caller gets a ``TurnStream`` to
read text chunks from; if the caller stops reading (or disconnects), the
task still runs to completion and persists the result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from council.agents.models import DEFAULT_SESSION_ID, Message, TokenUsage
from council.errors import CouncilError, InvalidInputError, UpstreamError
from council.tools.base import ToolContext
from council.tools.discovery import assemble_tools
from council.tools.mcp_client import RemoteToolConnection

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from council.agents.models import RemoteToolServer
    from council.agents.store import AgentStore
    from council.llm.client import ClaudeModel
    from council.memory.store import AgentMemory

logger = logging.getLogger(__name__)

_END = object()
_CANCELLED = "Turn was cancelled"


@dataclass
class TurnResult:
    """What a finished turn persisted."""

    text: str
    messages: list[Message]
    usage: TokenUsage


class TurnStream:
    """The caller's view of a running turn.

    Iterate it for text chunks; iteration raises the turn's error, if any,
    after the last chunk. ``await stream.result()`` waits for persistence.
    """

    def __init__(self, agent_id: str, session_id: str) -> None:
        self.agent_id = agent_id
        self.session_id = session_id
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._done: asyncio.Future[TurnResult] = asyncio.get_running_loop().create_future()

    # -- Producer side ---------------------------------------------------------

    def mark_ready(self) -> None:
        self._ready.set_result(None)

    def fail_setup(self, exc: BaseException) -> None:
        self._ready.set_exception(exc)
        self._done.set_exception(exc)
        # Nobody awaits _done when setup fails; mark it retrieved.
        self._done.exception()

    async def push(self, chunk: str) -> None:
        self._queue.put_nowait(chunk)

    def finish(self, result: TurnResult) -> None:
        self._done.set_result(result)
        self._queue.put_nowait(_END)

    def fail(self, exc: BaseException) -> None:
        self._done.set_exception(exc)
        # The reader sees the error through the queue; result() may never be awaited.
        self._done.exception()
        self._queue.put_nowait(exc)

    # -- Consumer side ---------------------------------------------------------

    async def wait_ready(self) -> None:
        """Return once tools are assembled; raise if setup failed."""
        await asyncio.shield(self._ready)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def result(self) -> TurnResult:
        return await asyncio.shield(self._done)


class ConversationDriver:
    """Runs turns against the store, memory, model and remote tool servers."""

    def __init__(
        self,
        store: AgentStore,
        memory: AgentMemory,
        model: ClaudeModel,
        connection_factory: Callable[[RemoteToolServer], RemoteToolConnection] | None = None,
    ) -> None:
        self._store = store
        self._memory = memory
        self._model = model
        self._connection_factory = connection_factory or RemoteToolConnection
        self._tasks: set[asyncio.Task[None]] = set()

    async def start_turn(
        self,
        agent_id: str,
        content: str,
        session_id: str | None = None,
    ) -> TurnStream:
        """Persist the user message and start generating.

        Raises before any output is produced when the input is blank, the
        agent is unknown, or a remote tool server can't be reached. In the
        last case the user message has already been stored.
        """
        agent_id = (agent_id or "").strip()
        content = (content or "").strip()
        session_id = (session_id or "").strip() or DEFAULT_SESSION_ID
        if not agent_id:
            msg = "Missing agentId"
            raise InvalidInputError(msg)
        if not content:
            msg = "Message content is required"
            raise InvalidInputError(msg)

        await self._store.append_message(
            agent_id, session_id, Message(role="user", content=content)
        )

        stream = TurnStream(agent_id, session_id)
        task = asyncio.create_task(self._run_turn(stream), name=f"turn:{agent_id}/{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        await stream.wait_ready()
        return stream

    async def run_turn(
        self,
        agent_id: str,
        content: str,
        session_id: str | None = None,
    ) -> TurnResult:
        """Run a turn to completion without reading the stream."""
        stream = await self.start_turn(agent_id, content, session_id)
        return await stream.result()

    async def _run_turn(self, stream: TurnStream) -> None:
        agent_id, session_id = stream.agent_id, stream.session_id
        try:
            history = await self._store.get_messages(agent_id, session_id)
            system = await self._store.get_system_prompt(agent_id)
            servers = await self._store.list_servers(agent_id)
            tools = await assemble_tools(servers, self._connection_factory)
        except asyncio.CancelledError:
            stream.fail_setup(CouncilError(_CANCELLED))
            raise
        except Exception as exc:
            logger.warning("Turn setup failed for %s/%s: %s", agent_id, session_id, exc)
            stream.fail_setup(exc)
            return

        stream.mark_ready()
        ctx = ToolContext(
            agent_id=agent_id, session_id=session_id, store=self._store, memory=self._memory
        )
        try:
            try:
                generated = await self._model.generate_response(
                    history,
                    system=system,
                    tools=tools.registry,
                    ctx=ctx,
                    on_text_delta=stream.push,
                )
            except CouncilError:
                raise
            except Exception as exc:
                msg = f"Model generation failed: {exc}"
                raise UpstreamError(msg) from exc

            await self._store.append_messages(agent_id, session_id, generated.messages)
            totals = await self._store.add_usage(agent_id, session_id, generated.usage)
            logger.info(
                "Turn %s/%s done: %d round(s), %d message(s), +%d tokens (session total %d)",
                agent_id,
                session_id,
                generated.rounds,
                len(generated.messages),
                generated.usage.total_tokens,
                totals.total_tokens,
            )
            stream.finish(
                TurnResult(text=generated.text, messages=generated.messages, usage=generated.usage)
            )
        except asyncio.CancelledError:
            logger.warning("Turn %s/%s cancelled", agent_id, session_id)
            stream.fail(CouncilError(_CANCELLED))
            raise
        except Exception as exc:
            logger.exception("Turn failed for %s/%s", agent_id, session_id)
            stream.fail(exc)
        finally:
            await tools.aclose()

    async def aclose(self) -> None:
        """Wait for in-flight turns (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
