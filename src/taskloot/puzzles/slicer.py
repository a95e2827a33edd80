"""Image normalization and grid slicing.

Pure functions, no I/O. The source image is centre-crop fitted onto a square
canvas, then cut into side x side rectangles in row-major order. Every piece
is ``canvas // side`` pixels wide and tall except the last row and column,
which absorb the remainder so pieces never overlap or leave gaps.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from taskloot.errors import InvalidImageError

ALLOWED_FORMATS = ("JPEG", "PNG", "WEBP")
GRID_SIZES = (9, 16, 25)
DEFAULT_CANVAS_SIZE = 400
DEFAULT_MAX_IMAGE_BYTES = 5_000_000
CANVAS_JPEG_QUALITY = 90


@dataclass(frozen=True)
class ImagePiece:
    """One rectangular region of the normalized canvas."""

    index: int
    row: int
    col: int
    box: tuple[int, int, int, int]  # (left, top, right, bottom)
    data: bytes  # raw RGB pixels, width * height * 3 bytes

    @property
    def size(self) -> tuple[int, int]:
        left, top, right, bottom = self.box
        return right - left, bottom - top


@dataclass(frozen=True)
class SlicedImage:
    canvas_jpeg: bytes
    pieces_per_side: int
    pieces: list[ImagePiece]


def pieces_per_side(grid_size: int) -> int:
    """3 for 9, 4 for 16, 5 for 25. Any other grid size is a caller error."""
    if grid_size not in GRID_SIZES:
        msg = f"Grid size must be one of {GRID_SIZES}, got {grid_size}"
        raise ValueError(msg)
    side = math.isqrt(grid_size)
    return side


def load_image(data: bytes, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Image.Image:
    """Decode and validate image bytes.

    Raises:
        InvalidImageError: empty, larger than ``max_bytes``, undecodable, or not
            one of the allowed formats.
    """
    allowed = ", ".join(ALLOWED_FORMATS)
    limit_mb = max_bytes / 1_000_000
    if not data:
        raise InvalidImageError(f"Image is empty. Allowed formats: {allowed}; max size {limit_mb:g}MB")
    if len(data) > max_bytes:
        raise InvalidImageError(f"Image exceeds {limit_mb:g}MB. Allowed formats: {allowed}")

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise InvalidImageError(f"Image could not be decoded. Allowed formats: {allowed}; max size {limit_mb:g}MB") from e

    if image.format not in ALLOWED_FORMATS:
        raise InvalidImageError(f"Unsupported image format {image.format}. Allowed formats: {allowed}")
    if image.width <= 0 or image.height <= 0:
        raise InvalidImageError("Image has no pixels")
    return image


def normalize(image: Image.Image, canvas_size: int = DEFAULT_CANVAS_SIZE) -> Image.Image:
    """Centre-crop fit onto a square RGB canvas."""
    image = ImageOps.exif_transpose(image)
    return ImageOps.fit(
        image.convert("RGB"),
        (canvas_size, canvas_size),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )


def piece_boxes(canvas_size: int, side: int) -> list[tuple[int, int, int, int]]:
    """Crop boxes in row-major order; the final row/column takes leftover pixels."""
    base = canvas_size // side
    boxes = []
    for row in range(side):
        top = row * base
        bottom = canvas_size if row == side - 1 else top + base
        for col in range(side):
            left = col * base
            right = canvas_size if col == side - 1 else left + base
            boxes.append((left, top, right, bottom))
    return boxes


def slice_canvas(canvas: Image.Image, grid_size: int) -> list[ImagePiece]:
    side = pieces_per_side(grid_size)
    pieces = []
    for index, box in enumerate(piece_boxes(canvas.width, side)):
        row, col = divmod(index, side)
        pieces.append(ImagePiece(index=index, row=row, col=col, box=box, data=canvas.crop(box).tobytes()))
    return pieces


def slice_image(
    data: bytes,
    grid_size: int,
    canvas_size: int = DEFAULT_CANVAS_SIZE,
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
) -> SlicedImage:
    """Validate, normalize, and slice ``data`` into ``grid_size`` pieces."""
    side = pieces_per_side(grid_size)
    canvas = normalize(load_image(data, max_bytes), canvas_size)

    buf = BytesIO()
    canvas.save(buf, format="JPEG", quality=CANVAS_JPEG_QUALITY)

    return SlicedImage(
        canvas_jpeg=buf.getvalue(),
        pieces_per_side=side,
        pieces=slice_canvas(canvas, grid_size),
    )
