"""Tests for the web_search tool."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from council.tools.web_tools import WebSearchParams, web_search

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_api_key(monkeypatch) -> None:
    """Ensure the Brave API key is set for most tests."""
    monkeypatch.setattr("council.config.settings.brave_search_api_key", "test-brave-key")


def _mock_httpx_client(mock_client_cls: MagicMock, response: httpx.Response) -> AsyncMock:
    """Wire up an AsyncClient context-manager mock that returns *response*."""
    mock_client = AsyncMock()
    mock_client.get.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def _brave_response(results: list[dict], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json={"web": {"results": results}},
        request=httpx.Request("GET", "https://api.search.brave.com/res/v1/web/search"),
    )


# ---------------------------------------------------------------------------
# web_search tests
# ---------------------------------------------------------------------------


async def test_web_search_success() -> None:
    results = [
        {"title": "Tea Guide", "url": "https://example.com/tea", "description": "A guide"},
        {"title": "Brewing", "url": "https://example.com/brew", "description": "Brew info"},
    ]

    with patch("council.tools.web_tools.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, _brave_response(results))
        result = await web_search(query="green tea", count=5)

    assert result.success
    assert result.data["count"] == 2
    assert result.data["query"] == "green tea"
    assert result.data["results"][0]["url"] == "https://example.com/tea"
    headers = mock_client.get.call_args.kwargs["headers"]
    assert headers["X-Subscription-Token"] == "test-brave-key"


async def test_web_search_truncates_to_count() -> None:
    results = [{"title": f"r{i}", "url": f"https://e/{i}", "description": ""} for i in range(5)]

    with patch("council.tools.web_tools.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, _brave_response(results))
        result = await web_search(query="x", count=2)

    assert result.data["count"] == 2


async def test_web_search_missing_api_key(monkeypatch) -> None:
    monkeypatch.setattr("council.config.settings.brave_search_api_key", "")
    result = await web_search(query="anything")
    assert not result.success
    assert "BRAVE_SEARCH_API_KEY" in result.error


async def test_web_search_blank_query() -> None:
    result = await web_search(query="   ")
    assert not result.success


async def test_web_search_api_error() -> None:
    with patch("council.tools.web_tools.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, _brave_response([], status_code=429))
        result = await web_search(query="x")

    assert not result.success
    assert "429" in result.error


async def test_web_search_network_error() -> None:
    with patch("council.tools.web_tools.httpx.AsyncClient") as mock_cls:
        mock_client = _mock_httpx_client(mock_cls, _brave_response([]))
        mock_client.get.side_effect = httpx.ConnectError("refused")
        result = await web_search(query="x")

    assert not result.success
    assert "refused" in result.error


def test_web_search_params_bounds() -> None:
    assert WebSearchParams(query="x").count == 3
    with pytest.raises(ValueError):
        WebSearchParams(query="x", count=11)
