"""Reward code generation.

Codes look like ``TL`` + base36 millisecond timestamp + 6 random characters
(A-Z, 0-9), all uppercase so they are easy to read out and type. Uniqueness
is enforced by the database; callers retry on collision.
"""

from __future__ import annotations

import secrets
import string
import time

REWARD_CODE_PREFIX = "TL"
RANDOM_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
RANDOM_LENGTH = 6

_BASE36 = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_reward_code(timestamp_ms: int | None = None) -> str:
    """Generate a reward code from the current time and a cryptographic random suffix."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(RANDOM_CHARSET) for _ in range(RANDOM_LENGTH))
    return f"{REWARD_CODE_PREFIX}{to_base36(timestamp_ms)}{suffix}"


def normalize_reward_code(code: str) -> str:
    """Normalize a typed code for lookup."""
    return code.strip().upper()
