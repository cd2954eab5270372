"""
Batch export: crop geometry, output naming, and job dispatch (Qt-free).

Each item is cropped by its effective offsets, scaled down so the longest
side fits ``max_dimension``, and written as ``{base_name}{index}.jpg``.
Items are numbered in chronological order (file time, then name), not in
load order.  Names are assigned before any work starts, so running jobs in
parallel never changes the numbering.

The first failing item stops the export and is raised as ``ExportError``.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from PIL import Image

from card_crop_tool.config import (
    JPEG_QUALITY, MAX_DIMENSION_DEFAULT, BASE_NAME_DEFAULT, START_INDEX_DEFAULT, OUTPUT_EXTENSION,
)
from card_crop_tool.image_io import unique_path
from card_crop_tool.models import ImageItem, Offsets, crop_size, fit_within
from card_crop_tool.worker import crop_and_resize, process_worker, save_jpeg

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class ExportError(RuntimeError):
    """Raised when one item of a batch export cannot be written."""

    def __init__(self, name: str, index: int, path: Path, reason: str):
        super().__init__(f"Failed to export {name} as {path.name}: {reason}")
        self.name = name
        self.index = index
        self.path = path
        self.reason = reason


@dataclass
class ExportJob:
    """One planned output file."""
    item: ImageItem
    index: int
    out_path: Path
    box: tuple[int, int, int, int]
    size: tuple[int, int]


# =============================================================================
# Geometry
# =============================================================================
def crop_box(offsets: Offsets, width: int, height: int) -> tuple[int, int, int, int]:
    """Crop box ``(left, top, right, bottom)`` for Pillow, at least 1×1."""
    crop_w, crop_h = crop_size(offsets, width, height)
    return offsets.left, offsets.top, offsets.left + crop_w, offsets.top + crop_h


def render(item: ImageItem, max_dimension: int) -> tuple[tuple[int, int, int, int], int, int]:
    """Return ``(box, output_width, output_height)`` for an item."""
    box = crop_box(item.offsets, item.width, item.height)
    out_w, out_h = fit_within(box[2] - box[0], box[3] - box[1], max_dimension)
    return box, out_w, out_h


def export_order(items: list[ImageItem]) -> list[ImageItem]:
    """Items sorted by (modification time, name); ties keep load order."""
    return sorted(items, key=lambda item: (item.modified, item.name))


def output_name(base_name: str, index: int) -> str:
    return f"{base_name}{index}{OUTPUT_EXTENSION}"


# =============================================================================
# Planning
# =============================================================================
def plan_export(
    items: list[ImageItem],
    output_dir: Path,
    base_name: str = BASE_NAME_DEFAULT,
    start_index: int = START_INDEX_DEFAULT,
    max_dimension: int = MAX_DIMENSION_DEFAULT,
) -> list[ExportJob]:
    """Order the items and fix each one's output path and geometry."""
    jobs = []
    for i, item in enumerate(export_order(items)):
        index = start_index + i
        box, out_w, out_h = render(item, max_dimension)
        out_path = unique_path(output_dir / output_name(base_name, index))
        jobs.append(ExportJob(item=item, index=index, out_path=out_path, box=box, size=(out_w, out_h)))
    return jobs


def _worker_args(job: ExportJob) -> dict:
    """Build serializable arguments for the parallel worker."""
    return {
        "index": job.index,
        "path": str(job.item.path),
        "img_w": job.item.width,
        "img_h": job.item.height,
        "out_path": str(job.out_path),
        "box": job.box,
        "size": job.size,
        "quality": JPEG_QUALITY,
    }


def export_job(job: ExportJob) -> Path:
    """Write one job in-process from the item's decoded pixels."""
    decoded = job.item.image
    img = Image.frombytes("RGBA", (decoded.width, decoded.height), decoded.pixels)
    try:
        save_jpeg(crop_and_resize(img, job.box, job.size), job.out_path, JPEG_QUALITY)
    except (OSError, ValueError) as exc:
        raise ExportError(job.item.name, job.index, job.out_path, str(exc)) from exc
    return job.out_path


# =============================================================================
# Batch export
# =============================================================================
def export_batch(
    items: list[ImageItem],
    output_dir: Path,
    base_name: str = BASE_NAME_DEFAULT,
    start_index: int = START_INDEX_DEFAULT,
    max_dimension: int = MAX_DIMENSION_DEFAULT,
    workers: int = 1,
    progress: ProgressCallback | None = None,
) -> list[Path]:
    """
    Export every item and return the written paths in numbering order.

    With ``workers > 1`` the jobs run in a process pool that re-reads each
    source file; otherwise they run in-process from the decoded pixels.
    The first failure cancels outstanding jobs and raises ``ExportError``.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    jobs = plan_export(items, output_dir, base_name, start_index, max_dimension)
    total = len(jobs)
    done = 0

    if workers <= 1 or total <= 1 or any(job.item.path is None for job in jobs):
        for job in jobs:
            export_job(job)
            done += 1
            logger.debug("Exported %s → %s", job.item.name, job.out_path)
            if progress:
                progress(done, total, job.item.name)
    else:
        by_index = {job.index: job for job in jobs}
        workers = min(workers, total, os.cpu_count() or 1)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(process_worker, _worker_args(job)) for job in jobs]
            for future in as_completed(futures):
                result = future.result()
                job = by_index[result["index"]]
                if not result["success"]:
                    executor.shutdown(wait=False, cancel_futures=True)
                    raise ExportError(job.item.name, job.index, job.out_path, result["error"])
                done += 1
                logger.debug("Exported %s → %s", job.item.name, job.out_path)
                if progress:
                    progress(done, total, job.item.name)

    logger.info("Exported %d image(s) to %s", total, output_dir)
    return [job.out_path for job in jobs]
