"""Page/limit pagination shared by task and reward listings."""

from __future__ import annotations

import math

from pydantic import BaseModel

from taskloot.errors import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_prev: bool


def validate_page(page: int, limit: int) -> int:
    """Check page >= 1 and 1 <= limit <= 100; return the row offset."""
    if page < 1:
        raise ValidationError("Page must be a positive integer", field="page")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
    return (page - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_items=total,
        items_per_page=limit,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
