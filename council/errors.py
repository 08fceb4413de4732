"""Error taxonomy shared by the store, tools, conversation driver and HTTP layer."""


class CouncilError(Exception):
    """Base class for classified failures.

    ``status`` is the HTTP status the web layer answers with.
    """

    status: int = 500


class InvalidInputError(CouncilError):
    """Blank or malformed caller-supplied data. Never retried."""

    status = 400


class NotFoundError(CouncilError):
    """Unknown agent, session or remote tool server."""

    status = 404


class ConflictError(CouncilError):
    """Duplicate identifier on create or update."""

    status = 409


class UpstreamError(CouncilError):
    """The model or a remote tool server failed."""

    status = 502


class StreamingIOError(CouncilError):
    """The caller went away while a turn was being streamed to it."""

    status = 499
