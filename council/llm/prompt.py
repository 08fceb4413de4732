"""Bootstrap system prompt for newly created agents."""

import logging

from council.config import settings

logger = logging.getLogger(__name__)

_bootstrap_cache: str | None = None


def load_bootstrap_prompt() -> str:
    """Return the bootstrap prompt, reading it from disk on first use.

    Candidates come from ``settings.get_bootstrap_candidates()``; empty files
    are skipped. Once a prompt has been read it is reused for the life of the
    process, so a file that disappears later does not break agent creation.

    Raises:
        FileNotFoundError: No candidate file exists or all of them are empty.
    """
    global _bootstrap_cache  # noqa: PLW0603
    if _bootstrap_cache:
        return _bootstrap_cache

    candidates = settings.get_bootstrap_candidates()
    for path in candidates:
        try:
            content = path.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if not content:
            continue
        _bootstrap_cache = content
        logger.info("Loaded bootstrap prompt from %s", path)
        return _bootstrap_cache

    checked = ", ".join(str(p) for p in candidates)
    msg = f"Missing bootstrap prompt (checked {checked})"
    raise FileNotFoundError(msg)


def _reset_cache() -> None:
    """Forget the cached prompt (for testing)."""
    global _bootstrap_cache  # noqa: PLW0603
    _bootstrap_cache = None
