"""Engine error taxonomy.

Each error maps to exactly one HTTP status in the error handler middleware.
Validation errors name the offending field; the others name the resource id.
"""

from __future__ import annotations


class TaskLootError(Exception):
    """Base class for errors surfaced verbatim to callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, resource_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"detail": self.message, "code": self.code}
        if self.resource_id is not None:
            payload["resource_id"] = self.resource_id
        return payload


class ValidationError(TaskLootError):
    """Malformed or out-of-range input. The caller can fix and retry."""

    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: str | None = None, resource_id: str | None = None) -> None:
        super().__init__(message, resource_id=resource_id)
        self.field = field

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.field is not None:
            payload["field"] = self.field
        return payload


class InvalidImageError(ValidationError):
    """Image bytes are oversized, empty, undecodable, or an unsupported format."""

    def __init__(self, message: str) -> None:
        super().__init__(message, field="image")


class ConflictError(TaskLootError):
    """Duplicate title, attempt, reward, or redemption."""

    status_code = 409
    code = "CONFLICT"


class NotFoundError(TaskLootError):
    """Unknown resource, or one the caller does not own."""

    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(TaskLootError):
    """Lifecycle precondition violated (e.g. publishing an active task)."""

    status_code = 403
    code = "FORBIDDEN"


class GoneError(TaskLootError):
    """The resource exists but its time window has closed."""

    status_code = 410
    code = "GONE"


class StorageError(TaskLootError):
    """Object storage rejected or failed an upload."""

    status_code = 502
    code = "STORAGE_ERROR"


class PuzzleGenerationError(TaskLootError):
    """Puzzle generation missed its deadline."""

    status_code = 504
    code = "PUZZLE_GENERATION_TIMEOUT"
