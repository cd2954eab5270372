"""
Application constants and configuration.

All border-detection tuning, export defaults, and GUI limits live here as
module-level constants.  User-adjustable values (threshold, max dimension,
file naming) are validated and persisted by the settings module.

The ``config_dir()`` helper returns the platform-appropriate config
directory and is shared by all persistence modules.
"""

import os
import sys
from pathlib import Path

# =============================================================================
# APP IDENTITY & CONFIG DIRECTORY
# =============================================================================
APP_NAME = "card-crop-tool"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory

# =============================================================================
# BACKGROUND CLASSIFICATION
# =============================================================================
# Luminance threshold for "white" background pixels
WHITE_THRESHOLD_MIN = 200
WHITE_THRESHOLD_MAX = 254
WHITE_THRESHOLD_DEFAULT = 245

# Neutral bright pixel: every channel within this distance below the threshold
NEUTRAL_TOLERANCE = 12

# Tinted near-white: brightest channel above threshold + boost,
# darkest channel no further than this below the threshold
CAST_BOOST = 4
CAST_TOLERANCE = 20

# Rec. 709 luminance weights
LUMA_R = 0.2126
LUMA_G = 0.7152
LUMA_B = 0.0722

# =============================================================================
# BORDER DETECTION
# =============================================================================
# Roughly this many samples are taken along each row/column
SAMPLE_TARGET = 600

# Share of background samples needed for a whole row/column to count as margin
BACKGROUND_LINE_RATIO = 0.995

# Safety margin kept around detected content, relative to the shorter side
SAFETY_MARGIN_RATIO = 0.005

# Minimum crop size (pixels) left in each dimension
MIN_CROP_PIXELS = 1

# =============================================================================
# EXPORT
# =============================================================================
MAX_DIMENSION_DEFAULT = 500
JPEG_QUALITY = 92
BASE_NAME_DEFAULT = "card"
START_INDEX_DEFAULT = 1
OUTPUT_EXTENSION = ".jpg"

# Supported image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".gif", ".psd"}

# =============================================================================
# GUI
# =============================================================================
# Longest side of the cropped preview (pixels in screen coordinates)
PREVIEW_MAX_SIDE = 320

# Nudge amounts for slider keyboard steps (pixels in image coordinates)
NUDGE_SMALL = 1
NUDGE_LARGE = 10
