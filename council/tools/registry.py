"""Tool registry — the catalog of tools offered to the model in a turn."""

from __future__ import annotations

import hashlib
import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from council.errors import CouncilError
from council.tools.base import ToolContext, ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "__"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


@dataclass
class ToolDef:
    """Internal representation of a registered tool.

    Local tools describe their input with ``params_model``; remote tools
    carry the JSON schema their server advertised in ``input_schema``.
    """

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None
    input_schema: dict[str, Any] | None = None


def sanitize_name(raw: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_]`` with ``_``."""
    return _UNSAFE_CHARS.sub("_", raw)


def scoped_tool_name(server_id: str, tool_name: str) -> str:
    """Collision-free name for a remote tool: ``<server>__<tool>``.

    The server part never contains ``__`` and never ends with ``_``, so the
    first ``__`` in a scoped name always marks where the server part ends.
    When the server id has to be rewritten for that, a digest of the raw id
    is appended so that e.g. ``a.b``, ``a-b`` and ``a__b`` stay distinct.
    """
    server_part = _UNDERSCORE_RUNS.sub("_", sanitize_name(server_id)).rstrip("_")
    if server_part != server_id:
        digest = hashlib.sha1(server_id.encode()).hexdigest()[:8]  # noqa: S324
        server_part = f"{server_part}_{digest}"
    return f"{server_part}{SCOPE_SEPARATOR}{sanitize_name(tool_name)}"


class ToolRegistry:
    """A name → tool mapping.

    The module-level ``registry`` holds the fixed local tools, registered
    with the decorator::

        @registry.tool(
            name="my_tool",
            description="Does a thing",
            category="utility",
        )
        async def my_tool() -> ToolResult:
            return ToolResult(data={"ok": True})

    Each turn works on ``registry.copy()`` with the remote tools added
    through ``add()``, so nothing discovered in one turn leaks into the next.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
            )
            return fn

        return decorator

    def add(self, tool_def: ToolDef) -> None:
        """Register a prepared tool definition."""
        if tool_def.name in self._tools:
            msg = f"Duplicate tool name: {tool_def.name}"
            raise ValueError(msg)
        self._tools[tool_def.name] = tool_def

    def copy(self) -> ToolRegistry:
        clone = ToolRegistry()
        clone._tools = dict(self._tools)
        return clone

    def get(self, name: str) -> ToolDef | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        """All registered tool names."""
        return list(self._tools.keys())

    def get_schemas(self) -> list[dict[str, Any]]:
        """Generate Claude-compatible tool schemas for all registered tools."""
        return [self._tool_schema(t) for t in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        ctx: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a tool by name with the given arguments.

        Validates arguments against the params_model if one is defined.
        If the handler accepts a ``ctx`` parameter, it is injected.
        Failures come back as an error result, never as an exception.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()

        try:
            if tool_def.params_model is not None:
                params = tool_def.params_model(**arguments)
                kwargs = params.model_dump()
            else:
                kwargs = dict(arguments)

            if ctx is not None and _accepts_param(tool_def.handler, "ctx"):
                kwargs["ctx"] = ctx

            result = await tool_def.handler(**kwargs)
            elapsed = time.monotonic() - t0
            if result.success:
                logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
            else:
                logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
            return result
        except CouncilError as exc:
            elapsed = time.monotonic() - t0
            logger.warning("Tool '%s' rejected in %.2fs: %s", name, elapsed, exc)
            return ToolResult(error=str(exc))
        except Exception:
            elapsed = time.monotonic() - t0
            logger.exception("Tool '%s' failed in %.2fs", name, elapsed)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

    @staticmethod
    def _tool_schema(tool_def: ToolDef) -> dict[str, Any]:
        """Build a single Claude tool schema dict."""
        if tool_def.params_model is not None:
            input_schema = tool_def.params_model.model_json_schema()
        elif tool_def.input_schema:
            input_schema = tool_def.input_schema
        else:
            input_schema = {"type": "object", "properties": {}}

        return {
            "name": tool_def.name,
            "description": tool_def.description,
            "input_schema": input_schema,
        }


def _accepts_param(fn: Callable[..., Any], param_name: str) -> bool:
    """Check whether a callable accepts a given parameter name."""
    return param_name in inspect.signature(fn).parameters


# Local tools register here; each turn works on a copy.
registry = ToolRegistry()
