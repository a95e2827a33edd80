"""Task lifecycle state machine.

    draft --publish--> active --feature--> active (featured)
    any   --(now > expires_at)--> expired   (derived at read time)

``blocked`` is an administrative override; nothing in the engine moves a task
into or out of it.
"""

from __future__ import annotations

from datetime import datetime

from taskloot.errors import ForbiddenError
from taskloot.timeutils import as_utc, is_past, utcnow

DRAFT = "draft"
ACTIVE = "active"
BLOCKED = "blocked"
EXPIRED = "expired"

TASK_STATUSES = (DRAFT, ACTIVE, BLOCKED, EXPIRED)

VALID_TRANSITIONS: dict[str, list[str]] = {
    DRAFT: [ACTIVE],
    ACTIVE: [],
    BLOCKED: [],
    EXPIRED: [],
}


def validate_transition(current_status: str, target_status: str, *, task_id: str | None = None) -> None:
    """Raise ForbiddenError if current_status -> target_status is not allowed."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise ForbiddenError(
            f"Invalid transition: {current_status} -> {target_status}. Valid transitions: {valid}",
            resource_id=task_id,
        )


def effective_status(status: str, expires_at: datetime | None, now: datetime | None = None) -> str:
    """Stored status, or ``expired`` once ``expires_at`` has passed."""
    if status != BLOCKED and is_past(expires_at, now):
        return EXPIRED
    return status


def is_currently_featured(
    is_featured: bool, featured_until: datetime | None, now: datetime | None = None
) -> bool:
    if not is_featured or featured_until is None:
        return False
    return as_utc(featured_until) > (now or utcnow())


def require_status(current_status: str, required: str, message: str, *, task_id: str | None = None) -> None:
    """Guard for actions that keep the status but need a specific one (e.g. feature)."""
    if current_status != required:
        raise ForbiddenError(message, resource_id=task_id)
