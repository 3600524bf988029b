"""
Album Tracker exception hierarchy.

    AlbumTrackerError (base)
    ├── SecurityError - path escapes the library root or uses forbidden constructs
    ├── NotFoundError - resolved path, artist or album does not exist
    ├── AccessDeniedError - a directory the caller asked for is unreadable
    ├── ConfigurationError - library root missing or invalid
    ├── ConcurrentOperationError - a reconciliation pass is already running
    └── InvalidRequestError - request is well-formed but not applicable

Missing folders are never errors: they surface as Missing ownership status.
"""

from typing import Any


class AlbumTrackerError(Exception):
    """Base exception for all album tracker errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class SecurityError(AlbumTrackerError):
    """User supplied path was rejected by the path guard."""

    def __init__(self, message: str, *, user_path: str | None = None) -> None:
        super().__init__(message, details={"user_path": user_path} if user_path is not None else None)
        self.user_path = user_path


class NotFoundError(AlbumTrackerError):
    pass


class AccessDeniedError(AlbumTrackerError):
    pass


class ConfigurationError(AlbumTrackerError):
    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class ConcurrentOperationError(AlbumTrackerError):
    """A reconciliation pass for the same artist is already in flight."""

    def __init__(self, artist_id: int) -> None:
        super().__init__(
            f"Reconciliation already in progress for artist {artist_id}",
            details={"artist_id": artist_id},
        )
        self.artist_id = artist_id


class InvalidRequestError(AlbumTrackerError):
    pass
