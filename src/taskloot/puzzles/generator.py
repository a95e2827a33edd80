"""Puzzle generation pipeline.

image bytes -> validated, normalized canvas -> pieces -> SHA-256 per piece
-> difficulty hint -> shuffled presentation order -> PuzzleConfig.

Decoding, resizing, slicing and hashing are CPU-bound and run on a small
bounded thread pool under a deadline so one large upload cannot starve the
event loop. The canvas is uploaded only after the CPU phase succeeds; if
anything fails after the upload, the uploaded object is removed again.
"""

from __future__ import annotations

import asyncio
import hashlib
import random
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import structlog
from PIL import Image

from taskloot.config import Settings, get_settings
from taskloot.errors import PuzzleGenerationError, ValidationError
from taskloot.puzzles.schemas import PuzzleConfig, PuzzlePiece
from taskloot.puzzles.slicer import GRID_SIZES, ImagePiece, SlicedImage, slice_image
from taskloot.storage.object_store import ObjectStorage
from taskloot.timeutils import utcnow

logger = structlog.get_logger()

DIFFICULTY_SAMPLE_SIZE = (50, 50)
EASY_ENTROPY_THRESHOLD = 0.1
MEDIUM_ENTROPY_THRESHOLD = 0.3

GRID_SIZE_BY_DIFFICULTY = {
    "easy": 9,
    "medium": 16,
    "hard": 25,
    "expert": 25,
}
DEFAULT_GRID_SIZE = 16

_executor: ThreadPoolExecutor | None = None


def get_puzzle_executor(settings: Settings | None = None) -> ThreadPoolExecutor:
    """Shared bounded pool for CPU-bound image work."""
    global _executor  # noqa: PLW0603
    if _executor is None:
        settings = settings or get_settings()
        _executor = ThreadPoolExecutor(
            max_workers=max(1, settings.puzzle_worker_threads),
            thread_name_prefix="puzzle",
        )
    return _executor


def shutdown_puzzle_executor() -> None:
    global _executor  # noqa: PLW0603
    if _executor is not None:
        _executor.shutdown(wait=False, cancel_futures=True)
        _executor = None


def grid_size_for_difficulty(difficulty: str) -> int:
    return GRID_SIZE_BY_DIFFICULTY.get(difficulty, DEFAULT_GRID_SIZE)


def hash_piece(piece: ImagePiece) -> str:
    return hashlib.sha256(piece.data).hexdigest()


def shuffle_indices(count: int, rng: random.Random) -> list[int]:
    """Fisher-Yates permutation of ``range(count)``.

    The identity permutation is a legal (if unlikely) result.
    """
    order = list(range(count))
    for i in range(count - 1, 0, -1):
        j = rng.randrange(i + 1)
        order[i], order[j] = order[j], order[i]
    return order


def estimate_difficulty(pieces: list[ImagePiece]) -> str:
    """Bucket the mean unique-colour ratio of the pieces.

    A coarse hint only. Any failure yields "medium".
    """
    try:
        sample_pixels = DIFFICULTY_SAMPLE_SIZE[0] * DIFFICULTY_SAMPLE_SIZE[1]
        total = 0.0
        for piece in pieces:
            thumb = Image.frombytes("RGB", piece.size, piece.data).resize(DIFFICULTY_SAMPLE_SIZE)
            colors = thumb.getcolors(maxcolors=sample_pixels)
            total += len(colors) / sample_pixels
        avg_entropy = total / len(pieces)
    except Exception:
        logger.warning("difficulty_estimate_failed", exc_info=True)
        return "medium"

    if avg_entropy < EASY_ENTROPY_THRESHOLD:
        return "easy"
    if avg_entropy < MEDIUM_ENTROPY_THRESHOLD:
        return "medium"
    return "hard"


@dataclass(frozen=True)
class _PreparedPuzzle:
    sliced: SlicedImage
    hashes: list[str]
    difficulty_seed: str


def _prepare(data: bytes, grid_size: int, canvas_size: int, max_bytes: int) -> _PreparedPuzzle:
    sliced = slice_image(data, grid_size, canvas_size=canvas_size, max_bytes=max_bytes)
    return _PreparedPuzzle(
        sliced=sliced,
        hashes=[hash_piece(p) for p in sliced.pieces],
        difficulty_seed=estimate_difficulty(sliced.pieces),
    )


class PuzzleGenerator:
    """Builds ``PuzzleConfig`` objects and owns their stored image assets."""

    def __init__(
        self,
        storage: ObjectStorage,
        settings: Settings | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or get_settings()
        self._executor = executor

    async def _prepare_in_pool(self, image: bytes, grid_size: int) -> _PreparedPuzzle:
        loop = asyncio.get_running_loop()
        executor = self._executor or get_puzzle_executor(self.settings)
        future = loop.run_in_executor(
            executor,
            _prepare,
            image,
            grid_size,
            self.settings.puzzle_canvas_size,
            self.settings.max_image_bytes,
        )
        try:
            return await asyncio.wait_for(future, timeout=self.settings.puzzle_generation_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise PuzzleGenerationError(
                f"Puzzle generation exceeded {self.settings.puzzle_generation_timeout_seconds}s"
            ) from e

    async def generate(
        self,
        image: bytes,
        grid_size: int = 9,
        rng: random.Random | None = None,
    ) -> PuzzleConfig:
        """Generate a puzzle from raw image bytes.

        Raises:
            ValidationError: unsupported grid size or image.
            StorageError: the normalized image could not be stored.
            PuzzleGenerationError: the CPU phase missed its deadline.
        """
        if grid_size not in GRID_SIZES:
            raise ValidationError("Grid size must be 9, 16, or 25", field="grid_size")

        logger.info("puzzle_generation_started", grid_size=grid_size, image_bytes=len(image))
        prepared = await self._prepare_in_pool(image, grid_size)

        image_key = f"{self.settings.oss_root_prefix.strip('/')}/{uuid.uuid4()}-original.jpg"
        image_url = await self.storage.put(image_key, prepared.sliced.canvas_jpeg, "image/jpeg")

        try:
            rng = rng or random.SystemRandom()
            now = utcnow()
            pieces = prepared.sliced.pieces
            config = PuzzleConfig(
                image_url=image_url,
                image_key=image_key,
                grid_size=grid_size,
                pieces_per_side=prepared.sliced.pieces_per_side,
                pieces=[
                    PuzzlePiece(index=p.index, content_hash=h)
                    for p, h in zip(pieces, prepared.hashes)
                ],
                shuffled_order=shuffle_indices(len(pieces), rng),
                difficulty_seed=prepared.difficulty_seed,
                correct_solution=[p.index for p in pieces],
                created_at=now,
                expires_at=now + timedelta(hours=self.settings.puzzle_validity_hours),
            )
        except Exception:
            await self._delete_keys([image_key])
            raise

        logger.info(
            "puzzle_generated",
            grid_size=grid_size,
            pieces=len(config.pieces),
            difficulty_seed=config.difficulty_seed,
            image_url=image_url,
        )
        return config

    async def delete_assets(self, config: PuzzleConfig | dict[str, Any] | None) -> None:
        """Best-effort removal of a puzzle's stored image. Never raises."""
        if config is None:
            return
        if isinstance(config, PuzzleConfig):
            key = config.image_key
        else:
            key = config.get("image_key")
        await self._delete_keys([key] if key else [])

    async def _delete_keys(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self.storage.delete_many(keys)
        except Exception:
            logger.warning("puzzle_asset_cleanup_failed", keys=keys, exc_info=True)
