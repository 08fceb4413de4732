"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Council configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    max_output_tokens: int = Field(default=4096)
    llm_timeout_seconds: float = Field(default=120.0)
    max_tool_rounds: int = Field(default=10)

    # Durable store
    database_path: Path = Field(default=Path("data/council.db"))
    key_prefix: str = Field(default="council:v1")

    # Memory index
    memory_path: Path = Field(default=Path("data/memory"))
    memory_timezone: str = Field(default="UTC")
    memory_search_limit: int = Field(default=3)
    memory_page_size: int = Field(default=100)
    memory_max_pages: int = Field(default=20)

    # Bootstrap system prompt. Empty means search the default locations.
    bootstrap_prompt_path: str = Field(default="")

    # Remote tool servers
    remote_tool_connect_timeout: float = Field(default=15.0)
    remote_tool_call_timeout: float = Field(default=60.0)

    # Brave Search (web research)
    brave_search_api_key: str = Field(default="")

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_bootstrap_candidates(self) -> list[Path]:
        """Files checked, in order, for the bootstrap system prompt."""
        if self.bootstrap_prompt_path.strip():
            return [Path(self.bootstrap_prompt_path.strip())]
        return [
            Path("bootstrap.md"),
            Path("BOOTSTRAP.md"),
            Path("config/bootstrap.md"),
            Path("config/BOOTSTRAP.md"),
        ]


settings = Settings()
