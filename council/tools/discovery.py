"""Per-turn tool assembly: local tools plus every enabled remote server's tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from council.config import settings
from council.errors import UpstreamError
from council.tools.mcp_client import RemoteToolConnection
from council.tools.registry import ToolDef, ToolRegistry, registry, scoped_tool_name

if TYPE_CHECKING:
    from collections.abc import Callable

    from council.agents.models import RemoteToolServer
    from council.tools.base import ToolResult

logger = logging.getLogger(__name__)


@dataclass
class TurnTools:
    """The tool set of one turn and the connections backing it."""

    registry: ToolRegistry
    connections: list[RemoteToolConnection] = field(default_factory=list)

    async def aclose(self) -> list[Exception]:
        """Close every connection, whatever the others do.

        Close failures are logged and returned, never raised.
        """
        errors: list[Exception] = []
        for conn in reversed(self.connections):
            try:
                await conn.close()
            except Exception as exc:
                logger.warning("Failed to close MCP server '%s': %s", conn.server.id, exc)
                errors.append(exc)
        self.connections.clear()
        return errors


def _remote_caller(conn: RemoteToolConnection, tool_name: str) -> Callable[..., Any]:
    async def call_remote_tool(**kwargs: Any) -> ToolResult:
        return await conn.call_tool(tool_name, kwargs)

    return call_remote_tool


async def assemble_tools(
    servers: list[RemoteToolServer],
    connection_factory: Callable[[RemoteToolServer], RemoteToolConnection] = RemoteToolConnection,
) -> TurnTools:
    """Build a fresh tool set for one turn.

    Enabled servers are connected in configuration order, each bounded by
    ``settings.remote_tool_connect_timeout``. If any server fails, every
    connection opened so far is closed and ``UpstreamError`` is raised, so
    the model never sees a partial tool set.
    """
    tools = TurnTools(registry=registry.copy())
    try:
        for server in servers:
            if not server.enabled:
                continue
            conn = connection_factory(server)
            tools.connections.append(conn)
            try:
                async with asyncio.timeout(settings.remote_tool_connect_timeout):
                    remote_tools = await conn.connect()
            except Exception as exc:
                msg = f"MCP server '{server.name}' ({server.id}) is unavailable: {exc}"
                raise UpstreamError(msg) from exc

            for remote in remote_tools:
                name = scoped_tool_name(server.id, remote.name)
                existing = tools.registry.get(name)
                if existing is not None:
                    owner = existing.category.removeprefix("mcp:")
                    if owner == server.id:
                        msg = (
                            f"MCP server '{server.name}' ({server.id}) advertises tools "
                            f"that both map to '{name}'"
                        )
                    else:
                        msg = (
                            f"Tool name '{name}' from MCP server '{server.name}' "
                            f"({server.id}) collides with a tool from '{owner}'"
                        )
                    raise UpstreamError(msg)
                tools.registry.add(
                    ToolDef(
                        name=name,
                        description=remote.description or f"{remote.name} ({server.name})",
                        category=f"mcp:{server.id}",
                        handler=_remote_caller(conn, remote.name),
                        input_schema=remote.inputSchema or None,
                    )
                )
    except BaseException:
        await tools.aclose()
        raise
    return tools
