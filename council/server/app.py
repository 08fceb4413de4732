"""HTTP API: agent administration and the streaming chat endpoint.

Classified errors (``CouncilError``) raised before a response starts are
turned into ``{"error": ...}`` JSON with the error's status by one middleware.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from council.agents.models import DEFAULT_SESSION_ID
from council.errors import CouncilError, InvalidInputError, StreamingIOError
from council.services import Services

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SERVICES = web.AppKey("services", Services)


@web.middleware
async def _error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    try:
        return await handler(request)
    except CouncilError as exc:
        if exc.status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, exc)
        return web.json_response({"error": str(exc)}, status=exc.status)


async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        msg = "Request body must be valid JSON"
        raise InvalidInputError(msg) from exc
    if not isinstance(payload, dict):
        msg = "Request body must be a JSON object"
        raise InvalidInputError(msg)
    return payload


def _services(request: web.Request) -> Services:
    return request.app[SERVICES]


# -- Health --------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


# -- Agents --------------------------------------------------------------------


async def _list_agents(request: web.Request) -> web.Response:
    agents = await _services(request).store.list_agents()
    return web.json_response([a.model_dump() for a in agents])


async def _create_agent(request: web.Request) -> web.Response:
    body = await _json_body(request)
    agent = await _services(request).store.create_agent(
        str(body.get("id") or ""), str(body.get("name") or "")
    )
    return web.json_response(agent.model_dump(), status=201)


async def _get_system_prompt(request: web.Request) -> web.Response:
    prompt = await _services(request).store.get_system_prompt(request.match_info["agent_id"])
    return web.json_response({"systemPrompt": prompt})


async def _update_system_prompt(request: web.Request) -> web.Response:
    body = await _json_body(request)
    agent_id = request.match_info["agent_id"]
    store = _services(request).store
    await store.update_system_prompt(agent_id, str(body.get("systemPrompt") or ""))
    return web.json_response({"systemPrompt": await store.get_system_prompt(agent_id)})


async def _reset_system_prompt(request: web.Request) -> web.Response:
    agent_id = request.match_info["agent_id"]
    store = _services(request).store
    await store.reset_system_prompt(agent_id)
    return web.json_response({"systemPrompt": await store.get_system_prompt(agent_id)})


# -- Sessions ------------------------------------------------------------------


async def _list_sessions(request: web.Request) -> web.Response:
    sessions = await _services(request).store.list_sessions(request.match_info["agent_id"])
    return web.json_response([s.model_dump() for s in sessions])


async def _get_messages(request: web.Request) -> web.Response:
    messages = await _services(request).store.get_messages(
        request.match_info["agent_id"], request.match_info["session_id"]
    )
    return web.json_response([m.model_dump() for m in messages])


async def _clear_messages(request: web.Request) -> web.Response:
    await _services(request).store.clear_messages(
        request.match_info["agent_id"], request.match_info["session_id"]
    )
    return web.json_response({"ok": True})


async def _start_fresh(request: web.Request) -> web.Response:
    await _services(request).store.start_fresh(request.match_info["agent_id"])
    return web.json_response({"ok": True, "sessionId": DEFAULT_SESSION_ID})


async def _get_usage(request: web.Request) -> web.Response:
    usage = await _services(request).store.get_usage(
        request.match_info["agent_id"], request.match_info["session_id"]
    )
    return web.json_response(usage.model_dump())


# -- Remote tool servers -------------------------------------------------------


async def _list_servers(request: web.Request) -> web.Response:
    servers = await _services(request).store.list_servers(request.match_info["agent_id"])
    return web.json_response([s.model_dump() for s in servers])


async def _add_server(request: web.Request) -> web.Response:
    body = await _json_body(request)
    servers = await _services(request).store.add_server(request.match_info["agent_id"], body)
    return web.json_response([s.model_dump() for s in servers], status=201)


async def _update_server(request: web.Request) -> web.Response:
    body = await _json_body(request)
    servers = await _services(request).store.update_server(
        request.match_info["agent_id"], request.match_info["server_id"], body
    )
    return web.json_response([s.model_dump() for s in servers])


async def _delete_server(request: web.Request) -> web.Response:
    servers = await _services(request).store.delete_server(
        request.match_info["agent_id"], request.match_info["server_id"]
    )
    return web.json_response([s.model_dump() for s in servers])


# -- Memory --------------------------------------------------------------------


async def _list_memories(request: web.Request) -> web.Response:
    services = _services(request)
    agent_id = request.match_info["agent_id"]
    await services.store.get_system_prompt(agent_id)  # 404 for unknown agents
    documents = await services.memory.list_all(agent_id)
    return web.json_response([d.model_dump() for d in documents])


async def _reset_memories(request: web.Request) -> web.Response:
    services = _services(request)
    agent_id = request.match_info["agent_id"]
    await services.store.get_system_prompt(agent_id)
    await services.memory.reset(agent_id)
    return web.json_response({"ok": True})


# -- Chat ----------------------------------------------------------------------


async def _chat(request: web.Request) -> web.StreamResponse:
    """POST /api/chat — run a turn and stream its text as plain text.

    Nothing is sent until the first chunk (or the end of the turn) is
    available, so errors before any output are JSON with a status. After
    that the connection is cut so the caller sees a truncated body.
    """
    body = await _json_body(request)
    stream = await _services(request).driver.start_turn(
        str(body.get("agentId") or ""),
        str(body.get("content") or ""),
        str(body.get("sessionId") or ""),
    )

    chunks = aiter(stream)
    try:
        first = await anext(chunks)
    except StopAsyncIteration:
        first = None

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/plain; charset=utf-8",
            "Cache-Control": "no-cache, no-transform",
        }
    )
    try:
        await response.prepare(request)
        if first is not None:
            await response.write(first.encode("utf-8"))
            async for chunk in chunks:
                await response.write(chunk.encode("utf-8"))
    except ConnectionResetError as exc:
        msg = f"Caller disconnected: {exc}"
        err = StreamingIOError(msg)
        logger.info(
            "Turn %s/%s: %s (%d); finishing in background",
            stream.agent_id,
            stream.session_id,
            err,
            err.status,
        )
        return response
    except CouncilError as exc:
        logger.warning("Turn %s/%s aborted mid-stream: %s", stream.agent_id, stream.session_id, exc)
        response.force_close()
        if request.transport is not None:
            request.transport.close()
        return response

    await response.write_eof()
    return response


def create_app(services: Services) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_error_middleware])
    app[SERVICES] = services

    app.router.add_get("/health", _health)
    app.router.add_post("/api/chat", _chat)

    app.router.add_get("/api/agents", _list_agents)
    app.router.add_post("/api/agents", _create_agent)
    agent = "/api/agents/{agent_id}"
    app.router.add_get(f"{agent}/system-prompt", _get_system_prompt)
    app.router.add_put(f"{agent}/system-prompt", _update_system_prompt)
    app.router.add_post(f"{agent}/system-prompt/reset", _reset_system_prompt)

    app.router.add_get(f"{agent}/sessions", _list_sessions)
    app.router.add_post(f"{agent}/sessions/default/fresh", _start_fresh)
    app.router.add_get(f"{agent}/sessions/{{session_id}}/messages", _get_messages)
    app.router.add_delete(f"{agent}/sessions/{{session_id}}/messages", _clear_messages)
    app.router.add_get(f"{agent}/sessions/{{session_id}}/usage", _get_usage)

    app.router.add_get(f"{agent}/mcp-servers", _list_servers)
    app.router.add_post(f"{agent}/mcp-servers", _add_server)
    app.router.add_put(f"{agent}/mcp-servers/{{server_id}}", _update_server)
    app.router.add_delete(f"{agent}/mcp-servers/{{server_id}}", _delete_server)

    app.router.add_get(f"{agent}/memories", _list_memories)
    app.router.add_delete(f"{agent}/memories", _reset_memories)

    async def _shutdown(app: web.Application) -> None:
        await app[SERVICES].aclose()

    app.on_cleanup.append(_shutdown)
    return app

