"""Field rules for task creation and updates.

Every check raises ``ValidationError`` naming the field, so an API caller can
point at the exact input to fix.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from taskloot.errors import ValidationError
from taskloot.timeutils import as_utc, utcnow

TASK_TYPES = ("image-puzzle", "spot-diff", "speed-challenge", "meme", "logic")
DIFFICULTIES = ("easy", "medium", "hard", "expert")
REWARD_TYPES = ("discount", "coupon", "points", "cashback")

TITLE_MIN, TITLE_MAX = 3, 100
DESCRIPTION_MAX = 1000
REWARD_DESCRIPTION_MIN, REWARD_DESCRIPTION_MAX = 10, 255

# Fields a company may change on a draft task.
UPDATABLE_FIELDS = ("title", "description", "difficulty", "reward_value", "reward_description")


def validate_title(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("Title is required", field="title")
    title = value.strip()
    if not TITLE_MIN <= len(title) <= TITLE_MAX:
        raise ValidationError(
            f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters", field="title"
        )
    return title


def validate_description(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Description must be text", field="description")
    description = value.strip()
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError(
            f"Description must not exceed {DESCRIPTION_MAX} characters", field="description"
        )
    return description or None


def _validate_choice(value: Any, choices: tuple[str, ...], field: str) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}", field=field)
    return value


def validate_task_type(value: Any) -> str:
    return _validate_choice(value, TASK_TYPES, "task_type")


def validate_difficulty(value: Any) -> str:
    return _validate_choice(value, DIFFICULTIES, "difficulty")


def validate_reward_type(value: Any) -> str:
    return _validate_choice(value, REWARD_TYPES, "reward_type")


def validate_reward_value(value: Any, max_value: float | Decimal) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError("Reward value must be a number", field="reward_value")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError("Reward value must be a number", field="reward_value") from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Reward value must be greater than 0", field="reward_value")
    if amount > Decimal(str(max_value)):
        raise ValidationError(f"Reward value must not exceed {max_value}", field="reward_value")
    return amount.quantize(Decimal("0.01"))


def validate_reward_description(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("Reward description is required", field="reward_description")
    text = value.strip()
    if not REWARD_DESCRIPTION_MIN <= len(text) <= REWARD_DESCRIPTION_MAX:
        raise ValidationError(
            f"Reward description must be between {REWARD_DESCRIPTION_MIN} and "
            f"{REWARD_DESCRIPTION_MAX} characters",
            field="reward_description",
        )
    return text


def validate_expires_at(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError("Expiry must be a timestamp", field="expires_at")
    expires_at = as_utc(value)
    if expires_at <= utcnow():
        raise ValidationError("Expiry must be in the future", field="expires_at")
    return expires_at


def validate_new_task(data: dict[str, Any], max_reward_value: float | Decimal) -> dict[str, Any]:
    """Validate and normalize the fields of a task being created."""
    return {
        "title": validate_title(data.get("title")),
        "description": validate_description(data.get("description")),
        "task_type": validate_task_type(data.get("task_type")),
        "difficulty": validate_difficulty(data.get("difficulty")),
        "reward_type": validate_reward_type(data.get("reward_type")),
        "reward_value": validate_reward_value(data.get("reward_value"), max_reward_value),
        "reward_description": validate_reward_description(data.get("reward_description")),
        "expires_at": validate_expires_at(data.get("expires_at")),
    }


def validate_task_patch(patch: dict[str, Any], max_reward_value: float | Decimal) -> dict[str, Any]:
    """Keep whitelisted fields only and re-validate each one.

    Raises ValidationError when nothing updatable remains.
    """
    fields = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
    if not fields:
        raise ValidationError(
            f"No valid fields to update. Allowed: {', '.join(UPDATABLE_FIELDS)}", field="patch"
        )

    cleaned: dict[str, Any] = {}
    for name, value in fields.items():
        if name == "title":
            cleaned[name] = validate_title(value)
        elif name == "description":
            cleaned[name] = validate_description(value)
        elif name == "difficulty":
            cleaned[name] = validate_difficulty(value)
        elif name == "reward_value":
            cleaned[name] = validate_reward_value(value, max_reward_value)
        elif name == "reward_description":
            cleaned[name] = validate_reward_description(value)
    return cleaned
