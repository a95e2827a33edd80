"""Typed puzzle configuration.

``PuzzleConfig`` is the server-side record, solution included. Anything handed
to a player goes through ``PuzzleConfig.redacted()``, which returns a
``PublicPuzzleConfig``: a separate model with no solution field at all.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class PuzzlePiece(BaseModel):
    index: int
    content_hash: str


class _PuzzleLayout(BaseModel):
    image_url: str | None = None
    grid_size: int
    pieces_per_side: int
    pieces: list[PuzzlePiece]
    shuffled_order: list[int]
    difficulty_seed: str
    created_at: datetime
    expires_at: datetime


class PublicPuzzleConfig(_PuzzleLayout):
    """What a player may see. Extra keys in the input are dropped."""


class PuzzleConfig(_PuzzleLayout):
    image_key: str | None = None
    correct_solution: list[int]

    @classmethod
    def from_stored(cls, data: dict[str, Any]) -> PuzzleConfig:
        return cls.model_validate(data)

    def to_stored(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def redacted(self) -> PublicPuzzleConfig:
        return PublicPuzzleConfig.model_validate(
            self.model_dump(exclude={"correct_solution", "image_key"})
        )


def redact_stored(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Project a stored puzzle_config JSON blob to its player-facing form."""
    if data is None:
        return None
    return PublicPuzzleConfig.model_validate(data).model_dump(mode="json")
