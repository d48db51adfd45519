"""Error taxonomy for directory fetches and membership mutations."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for recoverable directory engine failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FetchError(DirectoryError):
    """A page fetch failed (network, HTTP status, or malformed envelope)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MutationError(DirectoryError):
    """A team membership add/remove was rejected or could not be sent."""

    def __init__(self, message: str, *, entity_id: str, operation: str) -> None:
        super().__init__(message)
        self.entity_id = entity_id
        self.operation = operation


__all__ = [
    "DirectoryError",
    "FetchError",
    "MutationError",
]
