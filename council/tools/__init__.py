"""Tool framework — import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
from council.config import settings
from council.tools import agent_tools, memory_tools  # noqa: F401
from council.tools.registry import registry

# Conditionally load web research tools when Brave Search API key is configured.
if settings.brave_search_api_key:
    from council.tools import web_tools  # noqa: F401

__all__ = ["registry"]
