"""
Data models and crop-geometry utilities.

``Offsets`` describes a crop as four inward distances from the image edges,
``DecodedImage`` is the immutable RGBA bitmap the detector reads, and
``ImageItem`` is one entry of the batch.  The helper functions below handle
clamping, the single-edit correction used by the offset sliders, and the
pair redistribution that adapts one image's crop to another image's size.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path

import numpy as np
from PIL import Image

from card_crop_tool.config import MIN_CROP_PIXELS

EDGES = ("top", "bottom", "left", "right")
VERTICAL_EDGES = ("top", "bottom")
HORIZONTAL_EDGES = ("left", "right")

_OPPOSITE = {"top": "bottom", "bottom": "top", "left": "right", "right": "left"}


# =============================================================================
# Data classes
# =============================================================================
@dataclass(frozen=True)
class Offsets:
    """Crop offsets in source pixels, measured inward from each edge."""
    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0

    def with_side(self, side: str, value: int) -> "Offsets":
        return replace(self, **{side: value})


@dataclass(frozen=True)
class DecodedImage:
    """Decoded bitmap: row-major RGBA bytes, 4 per pixel."""
    width: int
    height: int
    pixels: bytes = field(repr=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise ValueError(f"Pixel buffer has {len(self.pixels)} bytes, expected {expected}")

    @classmethod
    def from_pil(cls, img: Image.Image) -> "DecodedImage":
        rgba = img.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes("raw", "RGBA"))

    def as_array(self) -> np.ndarray:
        """Read-only ``(height, width, 4)`` uint8 view of the pixels."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.width, 4)


@dataclass
class ImageItem:
    """One image in the batch with its automatic and effective crop."""
    image: DecodedImage
    auto_offsets: Offsets
    offsets: Offsets
    name: str = ""
    path: Path | None = None
    modified: float = 0.0  # file modification time, used for export order
    is_manual: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


# =============================================================================
# Numeric helpers
# =============================================================================
def clamp(value: int, lo: int, hi: int) -> int:
    return min(max(value, lo), hi)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 → 3, -2.5 → -2)."""
    return math.floor(value + 0.5)


def axis_length(side: str, width: int, height: int) -> int:
    """Return the image dimension an edge offset is measured along."""
    if side in VERTICAL_EDGES:
        return height
    if side in HORIZONTAL_EDGES:
        return width
    raise ValueError(f"Unknown edge {side!r}; expected one of {', '.join(EDGES)}")


def clamp_offsets(offsets: Offsets, width: int, height: int) -> Offsets:
    """Clamp each offset individually into ``[0, dimension - 1]``."""
    return Offsets(
        top=clamp(offsets.top, 0, height - 1),
        bottom=clamp(offsets.bottom, 0, height - 1),
        left=clamp(offsets.left, 0, width - 1),
        right=clamp(offsets.right, 0, width - 1),
    )


def is_valid_offsets(offsets: Offsets, width: int, height: int) -> bool:
    """True when every offset is non-negative and at least one pixel remains per axis."""
    if min(offsets.top, offsets.bottom, offsets.left, offsets.right) < 0:
        return False
    return (
        offsets.left + offsets.right <= width - MIN_CROP_PIXELS
        and offsets.top + offsets.bottom <= height - MIN_CROP_PIXELS
    )


# =============================================================================
# Interactive edit rule
# =============================================================================
def apply_edit(offsets: Offsets, side: str, value: int, width: int, height: int) -> Offsets:
    """
    Set one offset and keep at least one pixel of crop on that axis.

    The new value is rounded and clamped to ``[0, dimension - 1]``.  If the
    crop on the edited axis drops below ``MIN_CROP_PIXELS``, the opposite
    offset is reduced just enough to restore it.  The opposite side is never
    increased and the other axis is never touched.
    """
    dimension = axis_length(side, width, height)
    new_value = clamp(round_half_up(value), 0, dimension - 1)
    result = offsets.with_side(side, new_value)

    opposite = _OPPOSITE[side]
    remaining = dimension - new_value - getattr(result, opposite)
    if remaining < MIN_CROP_PIXELS:
        fixed = clamp(dimension - MIN_CROP_PIXELS - new_value, 0, dimension - 1)
        result = result.with_side(opposite, min(getattr(result, opposite), fixed))
    return result


# =============================================================================
# Template reconciliation
# =============================================================================
def fit_pair_to_limit(a: int, b: int, limit: int) -> tuple[int, int]:
    """
    Shrink an opposite offset pair so that ``a + b <= limit``.

    The overflow is split in proportion to each value's share of the total.
    Whatever rounding leaves over is taken from ``b`` first, then from ``a``.
    Both results stay within ``[0, limit]``; a non-positive limit yields
    ``(0, 0)``.
    """
    if limit <= 0:
        return 0, 0
    a = clamp(a, 0, limit)
    b = clamp(b, 0, limit)
    total = a + b
    if total <= limit:
        return a, b

    overflow = total - limit
    reduce_a = round_half_up(overflow * a / total)
    reduce_b = overflow - reduce_a
    a = clamp(a - reduce_a, 0, limit)
    b = clamp(b - reduce_b, 0, limit)

    excess = a + b - limit
    if excess > 0:
        taken = min(b, excess)
        b -= taken
        excess -= taken
        if excess > 0:
            a = max(0, a - excess)
    return a, b


def adapt_offsets(template: Offsets, width: int, height: int) -> Offsets:
    """Adapt a crop template taken from one image to an image of ``width`` × ``height``."""
    clamped = clamp_offsets(template, width, height)
    top, bottom = fit_pair_to_limit(clamped.top, clamped.bottom, height - MIN_CROP_PIXELS)
    left, right = fit_pair_to_limit(clamped.left, clamped.right, width - MIN_CROP_PIXELS)
    return Offsets(top=top, bottom=bottom, left=left, right=right)


# =============================================================================
# Crop size helpers
# =============================================================================
def crop_size(offsets: Offsets, width: int, height: int) -> tuple[int, int]:
    """Size of the region left after cropping, never below 1×1."""
    return (
        max(1, width - offsets.left - offsets.right),
        max(1, height - offsets.top - offsets.bottom),
    )


def fit_within(crop_w: int, crop_h: int, max_side: int) -> tuple[int, int]:
    """Scale ``crop_w`` × ``crop_h`` down so the longest side is at most ``max_side``."""
    longest = max(crop_w, crop_h)
    if longest <= max_side:
        return crop_w, crop_h
    scale = max_side / longest
    return max(1, round_half_up(crop_w * scale)), max(1, round_half_up(crop_h * scale))
