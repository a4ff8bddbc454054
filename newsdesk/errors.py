"""Error taxonomy shared by services and the HTTP layer.

Services raise these; the API maps ``status_code`` straight onto the response.
Cache failures never surface here; the cache layer swallows them.
"""

from typing import Any


class ContentError(Exception):
    """Base class for errors a caller is expected to handle."""

    status_code = 500

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class ValidationFailed(ContentError):
    """Missing/malformed input. Raised before any store mutation."""

    status_code = 400


class NotFound(ContentError):
    status_code = 404


class Conflict(ContentError):
    """Duplicate slug or code. Nothing has been persisted."""

    status_code = 409
