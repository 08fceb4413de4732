"""Council entry point."""

import logging

from aiohttp import web

from council.config import settings
from council.server.app import create_app
from council.services import Services

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the HTTP server."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; chat turns will fail")
    if settings.brave_search_api_key:
        logger.info("Brave Search configured, web_search tool enabled")

    services = Services.from_settings()
    logger.info(
        "Starting Council on %s:%d with model %s...",
        settings.host,
        settings.port,
        settings.claude_model,
    )
    web.run_app(create_app(services), host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
