"""
Headless batch cropping from the command line.

Usage:
    card-crop scans/ -o out/ --threshold 250 --match-first
    card-crop a.jpg b.jpg -o out/ --offsets a.jpg=40,40,25,25 --dry-run
"""

import argparse
import logging
import sys
from pathlib import Path

from card_crop_tool.batch import BatchController
from card_crop_tool.config import WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX
from card_crop_tool.export import ExportError, export_batch, plan_export
from card_crop_tool.image_io import scan_paths
from card_crop_tool.models import EDGES
from card_crop_tool.settings import (
    Settings,
    normalize_base_name, normalize_max_dimension, normalize_start_index, normalize_threshold,
)

logger = logging.getLogger(__name__)


def parse_offsets_arg(text: str) -> tuple[str, list[int]]:
    """Parse ``NAME=TOP,BOTTOM,LEFT,RIGHT``."""
    name, sep, values = text.rpartition("=")
    parts = values.split(",")
    if not sep or not name or len(parts) != len(EDGES):
        raise argparse.ArgumentTypeError(f"expected NAME=TOP,BOTTOM,LEFT,RIGHT, got {text!r}")
    try:
        return name, [int(p) for p in parts]
    except ValueError:
        raise argparse.ArgumentTypeError(f"offsets must be integers, got {values!r}") from None


def build_parser() -> argparse.ArgumentParser:
    defaults = Settings()
    parser = argparse.ArgumentParser(
        prog="card-crop",
        description="Detect the white border around scanned cards and export cropped JPEGs.",
    )
    parser.add_argument("inputs", nargs="+", type=Path, help="Image files or folders")
    parser.add_argument("-o", "--output", type=Path, default=Path("."), help="Output folder (default: current)")
    parser.add_argument(
        "-t", "--threshold", default=defaults.white_threshold,
        help=f"White threshold, {WHITE_THRESHOLD_MIN}-{WHITE_THRESHOLD_MAX} (default: %(default)s)",
    )
    parser.add_argument("--match-first", action="store_true", help="Apply the first image's crop to all others")
    parser.add_argument(
        "--max-dimension", default=defaults.max_dimension,
        help="Longest side of exported images (default: %(default)s)",
    )
    parser.add_argument("--base-name", default=defaults.base_name, help="Output file prefix (default: %(default)s)")
    parser.add_argument("--start-index", default=defaults.start_index, help="First file number (default: %(default)s)")
    parser.add_argument(
        "--offsets", action="append", default=[], type=parse_offsets_arg, metavar="NAME=T,B,L,R",
        help="Manual offsets for the image with file name NAME (repeatable)",
    )
    parser.add_argument("-j", "--workers", type=int, default=1, help="Parallel export processes (default: 1)")
    parser.add_argument("-r", "--recursive", action="store_true", help="Scan folders recursively")
    parser.add_argument("--dry-run", action="store_true", help="Print offsets and file names without writing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    files = scan_paths(args.inputs, recursive=args.recursive)
    if not files:
        logger.error("No supported images found")
        return 1

    batch = BatchController(
        white_threshold=normalize_threshold(args.threshold),
        match_first_crop=args.match_first,
    )
    _, failed = batch.load_paths(files)
    if not len(batch):
        logger.error("None of the %d file(s) could be decoded", len(failed))
        return 1

    by_name = {item.name: item for item in batch.items}
    for name, values in args.offsets:
        item = by_name.get(name)
        if item is None:
            logger.warning("--offsets: no loaded image named %s", name)
            continue
        for side, value in zip(EDGES, values):
            batch.edit_offset(item.id, side, value)

    base_name = normalize_base_name(args.base_name)
    start_index = normalize_start_index(args.start_index)
    max_dimension = normalize_max_dimension(args.max_dimension)

    if args.dry_run:
        for job in plan_export(batch.items, args.output, base_name, start_index, max_dimension):
            o = job.item.offsets
            mode = "manual" if job.item.is_manual else "auto"
            print(
                f"{job.item.name} -> {job.out_path.name}  "
                f"T:{o.top} B:{o.bottom} L:{o.left} R:{o.right}  "
                f"{job.size[0]}x{job.size[1]}  ({mode})"
            )
        return 0

    try:
        written = export_batch(
            batch.items, args.output,
            base_name=base_name,
            start_index=start_index,
            max_dimension=max_dimension,
            workers=args.workers,
        )
    except ExportError as exc:
        logger.error("%s", exc)
        return 1

    print(f"Exported {len(written)} image(s). Next start index: {start_index + len(written)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
