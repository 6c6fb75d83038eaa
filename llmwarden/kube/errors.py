"""API error types shared by every ResourceClient implementation."""

from __future__ import annotations


class ApiError(Exception):
    """A Kubernetes API call failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    """The requested object does not exist (HTTP 404)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


class ConflictError(ApiError):
    """Write rejected because the object changed underneath us (HTTP 409)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=409)


class AlreadyExistsError(ConflictError):
    """Create rejected because an object with that name already exists."""


class AlreadyOwnedError(Exception):
    """The object already has a different controlling owner."""
