"""
Automatic border detection (Qt-free).

Finds the uniform light margin around a card or document photographed on a
near-white background.  Rows and columns are sampled on a stride and
classified as background when almost every sample is a bright, low-chroma
pixel; the detector then walks inward from each edge until it meets content.
Safe to import in worker processes.
"""

import logging

import numpy as np

from card_crop_tool.config import (
    WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX,
    NEUTRAL_TOLERANCE, CAST_BOOST, CAST_TOLERANCE,
    LUMA_R, LUMA_G, LUMA_B,
    SAMPLE_TARGET, BACKGROUND_LINE_RATIO, SAFETY_MARGIN_RATIO,
)
from card_crop_tool.models import DecodedImage, Offsets, clamp, round_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# Pixel classification
# =============================================================================
def is_background(r: int, g: int, b: int, threshold: int) -> bool:
    """
    Return True if the pixel belongs to the light margin.

    The pixel must reach ``threshold`` in luminance and then be either
    near-neutral (every channel close to the threshold) or a mildly tinted
    near-white (one channel above the threshold, none far below it).
    Saturated colours fail both tests.
    """
    luminance = LUMA_R * r + LUMA_G * g + LUMA_B * b
    if luminance < threshold:
        return False
    lo = min(r, g, b)
    if lo >= threshold - NEUTRAL_TOLERANCE:
        return True
    return max(r, g, b) >= threshold + CAST_BOOST and lo >= threshold - CAST_TOLERANCE


# =============================================================================
# Line sampling
# =============================================================================
def sample_positions(length: int) -> list[int]:
    """
    Positions sampled along a line of ``length`` pixels.

    Every ``max(1, length // SAMPLE_TARGET)``-th pixel is taken, plus the last
    pixel when the stride does not land on it.
    """
    stride = max(1, length // SAMPLE_TARGET)
    positions = list(range(0, length, stride))
    if (length - 1) % stride != 0:
        positions.append(length - 1)
    return positions


def background_mask(rgb: np.ndarray, threshold: int) -> np.ndarray:
    """Vectorized ``is_background`` over an ``(..., 3+)`` uint8 array."""
    channels = rgb[..., :3].astype(np.int16)
    r, g, b = channels[..., 0], channels[..., 1], channels[..., 2]
    luminance = LUMA_R * r + LUMA_G * g + LUMA_B * b
    lo = channels.min(axis=-1)
    hi = channels.max(axis=-1)
    neutral = lo >= threshold - NEUTRAL_TOLERANCE
    cast = (hi >= threshold + CAST_BOOST) & (lo >= threshold - CAST_TOLERANCE)
    return (luminance >= threshold) & (neutral | cast)


def background_lines(image: DecodedImage, threshold: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Classify every row and every column of ``image``.

    Returns two boolean vectors, one entry per row and one per column, true
    where at least ``BACKGROUND_LINE_RATIO`` of the sampled pixels are
    background.
    """
    arr = image.as_array()
    xs = sample_positions(image.width)
    ys = sample_positions(image.height)
    rows = background_mask(arr[:, xs], threshold).mean(axis=1) >= BACKGROUND_LINE_RATIO
    columns = background_mask(arr[ys, :], threshold).mean(axis=0) >= BACKGROUND_LINE_RATIO
    return rows, columns


def _content_span(is_background_line: np.ndarray) -> tuple[int, int]:
    """First and last content line; the full extent if there is no inner span."""
    content = np.flatnonzero(~is_background_line)
    if content.size and content[0] < content[-1]:
        return int(content[0]), int(content[-1])
    return 0, len(is_background_line) - 1


# =============================================================================
# Border detection
# =============================================================================
def find_content_bounds(image: DecodedImage, threshold: int) -> tuple[int, int, int, int]:
    """
    Return ``(top, bottom, left, right)`` pixel indices of the content box.

    Each axis is walked inward from both edges past background lines.  An
    axis whose walk collapses to a single line or less falls back to the
    full image extent.
    """
    rows, columns = background_lines(image, threshold)
    top, bottom = _content_span(rows)
    left, right = _content_span(columns)
    return top, bottom, left, right


def detect_offsets(image: DecodedImage, threshold: int) -> Offsets:
    """
    Detect the light border of ``image`` and return it as edge offsets.

    A safety margin of ``SAFETY_MARGIN_RATIO`` of the shorter side is left
    around the content.  The result is a pure function of the pixel data and
    threshold.
    """
    threshold = clamp(int(threshold), WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX)
    width, height = image.width, image.height
    top, bottom, left, right = find_content_bounds(image, threshold)

    margin = round_half_up(min(width, height) * SAFETY_MARGIN_RATIO)
    offsets = Offsets(
        top=clamp(top - margin, 0, height - 1),
        bottom=clamp(height - 1 - bottom - margin, 0, height - 1),
        left=clamp(left - margin, 0, width - 1),
        right=clamp(width - 1 - right - margin, 0, width - 1),
    )
    logger.debug(
        "Detected offsets for %dx%d image at threshold %d: %s",
        width, height, threshold, offsets,
    )
    return offsets
