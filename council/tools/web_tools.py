"""Web research tool — Brave Search."""

import logging

import httpx
from pydantic import Field

from council.config import settings
from council.tools.base import ToolParams, ToolResult
from council.tools.registry import registry

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


class WebSearchParams(ToolParams):
    query: str = Field(description="Search query string")
    count: int = Field(
        default=3,
        description="Number of results to return (1-10)",
        ge=1,
        le=10,
    )


@registry.tool(
    name="web_search",
    description=(
        "Search the web using Brave Search. Returns titles, URLs, and "
        "descriptions for the top matching pages."
    ),
    category="research",
    params_model=WebSearchParams,
)
async def web_search(query: str, count: int = 3) -> ToolResult:
    api_key = settings.brave_search_api_key.strip()
    if not api_key:
        return ToolResult(error="BRAVE_SEARCH_API_KEY is not configured.")

    query = query.strip()
    if not query:
        return ToolResult(error="Search query is required")

    headers = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip",
        "X-Subscription-Token": api_key,
    }
    params = {"q": query, "count": count, "search_lang": "en"}

    try:
        async with httpx.AsyncClient(timeout=20) as client:
            resp = await client.get(BRAVE_SEARCH_URL, headers=headers, params=params)

        if resp.status_code != 200:
            return ToolResult(
                error=f"Brave Search API returned {resp.status_code}: {resp.text[:200]}"
            )

        web_results = resp.json().get("web", {}).get("results", [])
        results = [
            {
                "title": r.get("title", ""),
                "url": r.get("url", ""),
                "description": r.get("description", ""),
            }
            for r in web_results[:count]
        ]

        return ToolResult(data={"results": results, "count": len(results), "query": query})
    except httpx.HTTPError as exc:
        logger.exception("Brave Search request failed")
        return ToolResult(error=f"Search request failed: {exc}")
