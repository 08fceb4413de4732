"""MCP client for an agent's remote tool servers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client

from council.config import settings
from council.tools.base import ToolResult

if TYPE_CHECKING:
    from council.agents.models import RemoteToolServer

logger = logging.getLogger(__name__)


class RemoteToolConnection:
    """Connection to a single remote MCP server for the span of one turn.

    ``connect()`` opens the transport and session and returns the server's
    tool catalogue; ``close()`` exits them again. Both must run in the same
    task.
    """

    def __init__(self, server: RemoteToolServer) -> None:
        self.server = server
        self._session: ClientSession | None = None
        self._context_managers: list[Any] = []

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> list[Any]:
        """Open the connection and list the advertised tools."""
        if self.server.transport == "sse":
            cm = sse_client(self.server.url, headers=self.server.headers)
            read_stream, write_stream = await cm.__aenter__()
        else:
            cm = streamablehttp_client(self.server.url, headers=self.server.headers)
            read_stream, write_stream, _ = await cm.__aenter__()
        self._context_managers.append(cm)

        session_cm = ClientSession(read_stream, write_stream)
        self._session = await session_cm.__aenter__()
        self._context_managers.append(session_cm)

        await self._session.initialize()
        response = await self._session.list_tools()
        logger.info(
            "Discovered %d tools from MCP server '%s'", len(response.tools), self.server.id
        )
        return list(response.tools)

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke a tool on the server by its own (unscoped) name."""
        if self._session is None:
            return ToolResult(error=f"Not connected to MCP server '{self.server.id}'")
        async with asyncio.timeout(settings.remote_tool_call_timeout):
            result = await self._session.call_tool(tool_name, arguments)

        texts = [item.text for item in result.content if getattr(item, "text", None)]
        output = "\n".join(texts) if texts else "(no output)"
        if result.isError:
            return ToolResult(error=output)
        data: dict[str, Any] = {"output": output}
        structured = getattr(result, "structuredContent", None)
        if structured:
            data["structured"] = structured
        return ToolResult(data=data)

    async def close(self) -> None:
        """Exit the session and transport, innermost first.

        Every context manager is exited even if an earlier one fails; the
        first failure is re-raised afterwards.
        """
        first_error: BaseException | None = None
        for cm in reversed(self._context_managers):
            try:
                await cm.__aexit__(None, None, None)
            except Exception as exc:
                first_error = first_error or exc
        self._context_managers.clear()
        self._session = None
        if first_error is not None:
            raise first_error
