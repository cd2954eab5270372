"""
Export worker function for parallel image processing (Qt-free).

This module is imported in child processes spawned by
``concurrent.futures.ProcessPoolExecutor``.  It must **never** import
PyQt6, which can crash or hang on some platforms.
"""

from pathlib import Path

from PIL import Image

from card_crop_tool.config import JPEG_QUALITY
from card_crop_tool.image_io import open_image


def crop_and_resize(img: Image.Image, box: tuple[int, int, int, int], size: tuple[int, int]) -> Image.Image:
    """Crop ``img`` to ``box`` and resample to ``size`` if it differs."""
    cropped = img.convert("RGB").crop(box)
    if cropped.size != size:
        cropped = cropped.resize(size, Image.Resampling.LANCZOS)
    return cropped


def save_jpeg(img: Image.Image, out_path: Path, quality: int = JPEG_QUALITY) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(str(out_path), "JPEG", quality=quality)


def process_worker(args: dict) -> dict:
    """Crop, downscale and save one image as JPEG. Runs in a separate process.

    ``args["box"]`` is the ``(left, top, right, bottom)`` crop box in source
    pixels and ``args["size"]`` the final ``(width, height)``.
    """
    idx = args["index"]
    src_path = Path(args["path"])
    out_path = Path(args["out_path"])
    box = tuple(args["box"])
    size = tuple(args["size"])

    try:
        img = open_image(src_path)
        if img.size != (args["img_w"], args["img_h"]):
            raise ValueError(
                f"source is {img.width}x{img.height}, expected {args['img_w']}x{args['img_h']}"
            )
        save_jpeg(crop_and_resize(img, box, size), out_path, args.get("quality", JPEG_QUALITY))
        return {"index": idx, "success": True, "name": src_path.name, "out_path": str(out_path)}
    except Exception as e:
        return {"index": idx, "success": False, "name": src_path.name, "error": str(e)}
