"""
Qt-free image I/O utilities.

Provides helpers to open images (including PSD), decode them into the RGBA
buffers the border detector works on, read file timestamps for export
ordering, expand input folders, and generate unique output paths.
Safe to import in worker processes.
"""

from pathlib import Path

from PIL import Image, ImageOps
from psd_tools import PSDImage

from card_crop_tool.config import IMAGE_EXTENSIONS
from card_crop_tool.models import DecodedImage

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None


def to_8bit(img: Image.Image) -> Image.Image:
    """
    Reduce 16-bit and 32-bit grayscale images to 8-bit ``L``.

    Pillow clips these modes at 255 when converting to RGB, which turns
    most of a 16-bit scan white.  ``I;16*`` is always scaled down; ``I`` and
    ``F`` only when their values exceed the 8-bit range.
    """
    if img.mode.startswith("I;16"):
        img = img.convert("I")
    elif img.mode not in ("I", "F") or img.getextrema()[1] <= 255:
        return img
    return img.point(lambda v: v * (1 / 256)).convert("L")


def open_image(path: Path) -> Image.Image:
    """
    Open an image file upright, using psd-tools for PSD and Pillow for the rest.

    EXIF orientation is applied so the pixels match what a viewer displays,
    and high bit depth grayscale is reduced to 8 bits.
    """
    if path.suffix.lower() == ".psd":
        return PSDImage.open(str(path)).composite()
    img = Image.open(path)
    img.load()
    return to_8bit(ImageOps.exif_transpose(img))


def decode_image(path: Path) -> DecodedImage:
    """Open ``path`` and return its pixels as an RGBA ``DecodedImage``."""
    return DecodedImage.from_pil(open_image(path))


def file_timestamp(path: Path) -> float:
    """Modification time of ``path`` in seconds since the epoch."""
    return path.stat().st_mtime


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def scan_paths(paths: list[Path], recursive: bool = False) -> list[Path]:
    """
    Expand a mix of files and folders into a list of image files.

    Folders contribute their supported images sorted by name (recursively
    when ``recursive`` is set).  Explicit files are kept in the given order
    if their extension is supported.
    """
    files: list[Path] = []
    for p in paths:
        if p.is_dir():
            candidates = p.rglob("*") if recursive else p.iterdir()
            found = [f for f in candidates if f.is_file() and is_supported(f)]
            files.extend(sorted(found, key=lambda f: str(f.relative_to(p)).lower()))
        elif is_supported(p):
            files.append(p)
    return files


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
