"""
Settings persistence: load, save, and normalize user-facing configuration.

User settings are stored in a JSON file in the user's config directory
(provided by ``config.config_dir()``).  Every value passes through a
``normalize_*`` helper, so malformed or out-of-range input degrades to a
documented default instead of raising.  This module is Qt-free.

The on-disk format uses a versioned envelope::

    {"version": 1, "settings": {"white_threshold": 245, ...}}
"""

import json
import logging
import math
import re
from dataclasses import asdict, dataclass
from pathlib import Path

from card_crop_tool.config import (
    config_dir,
    WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX, WHITE_THRESHOLD_DEFAULT,
    MAX_DIMENSION_DEFAULT, BASE_NAME_DEFAULT, START_INDEX_DEFAULT,
)
from card_crop_tool.models import clamp, round_half_up

logger = logging.getLogger(__name__)

_SETTINGS_FILENAME = "settings.json"
_FORMAT_VERSION = 1

# Characters forbidden in file names (superset across Windows/macOS/Linux)
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class Settings:
    """Global batch settings shared by the GUI and the command line."""
    white_threshold: int = WHITE_THRESHOLD_DEFAULT
    match_first_crop: bool = False
    max_dimension: int = MAX_DIMENSION_DEFAULT
    base_name: str = BASE_NAME_DEFAULT
    start_index: int = START_INDEX_DEFAULT


# =============================================================================
# Normalization
# =============================================================================
def _as_finite_number(value) -> float | None:
    """Convert ``value`` to a finite float, or None if that is not possible."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_threshold(value) -> int:
    """Round and clamp a threshold into the supported range; junk gives the default."""
    number = _as_finite_number(value)
    if number is None:
        return WHITE_THRESHOLD_DEFAULT
    return clamp(round_half_up(number), WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX)


def normalize_max_dimension(value) -> int:
    """Positive integer longest-side limit; anything else gives the default."""
    number = _as_finite_number(value)
    if number is None or number <= 0:
        return MAX_DIMENSION_DEFAULT
    return max(1, round_half_up(number))


def normalize_start_index(value) -> int:
    """Parse the leading integer of ``value`` (``"12abc"`` → 12); junk gives the default."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else START_INDEX_DEFAULT
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return START_INDEX_DEFAULT


def normalize_base_name(value) -> str:
    """Collapse whitespace and unsafe characters to ``_``; empty gives the default."""
    if not isinstance(value, str):
        return BASE_NAME_DEFAULT
    name = value.strip()
    if not name:
        return BASE_NAME_DEFAULT
    name = _WHITESPACE.sub("_", name)
    return _INVALID_NAME_CHARS.sub("_", name)


def normalize_settings(data: object) -> Settings:
    """Build a Settings instance from a loosely-typed dict."""
    if not isinstance(data, dict):
        return Settings()
    return Settings(
        white_threshold=normalize_threshold(data.get("white_threshold")),
        match_first_crop=bool(data.get("match_first_crop", False)),
        max_dimension=normalize_max_dimension(data.get("max_dimension")),
        base_name=normalize_base_name(data.get("base_name")),
        start_index=normalize_start_index(data.get("start_index")),
    )


# =============================================================================
# Load / Save
# =============================================================================
def _settings_path() -> Path:
    """Return the full path to settings.json."""
    return config_dir() / _SETTINGS_FILENAME


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from settings.json.

    Returns defaults if the file is missing, corrupt, or carries an
    unexpected version.  Individual bad values are replaced by their
    defaults without discarding the rest.
    """
    path = path or _settings_path()

    if not path.exists():
        logger.debug("No settings found at %s — using defaults", path)
        return Settings()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read settings (%s) — using defaults", exc)
        return Settings()

    if not isinstance(raw, dict) or raw.get("version") != _FORMAT_VERSION:
        logger.warning("Settings version mismatch or invalid format — using defaults")
        return Settings()

    return normalize_settings(raw.get("settings"))


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """
    Write settings to settings.json in versioned envelope.

    Raises OSError if the file cannot be written.
    """
    path = path or _settings_path()
    envelope = {"version": _FORMAT_VERSION, "settings": asdict(normalize_settings(asdict(settings)))}
    path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved settings to %s", path)
