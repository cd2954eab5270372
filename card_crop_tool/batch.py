"""
Batch state and orchestration (Qt-free).

``BatchController`` owns the ordered list of loaded images, the global
threshold and the "match first image" flag.  Every operation leaves each
item's effective offsets consistent with those settings and then notifies
subscribers, so the GUI only ever observes the controller.

Effective offsets of an item that is not under manual control are derived,
never edited in place:

* the reference item (first in load order) uses its auto offsets;
* other items use their own auto offsets, or, in match mode, the reference
  item's effective offsets adapted to their dimensions.
"""

import logging
from pathlib import Path
from typing import Callable

from card_crop_tool.detection import detect_offsets
from card_crop_tool.export import export_order
from card_crop_tool.image_io import decode_image, file_timestamp
from card_crop_tool.models import DecodedImage, ImageItem, Offsets, adapt_offsets, apply_edit, is_valid_offsets
from card_crop_tool.settings import normalize_threshold

logger = logging.getLogger(__name__)


def _checked(offsets: Offsets, image: DecodedImage, name: str) -> Offsets:
    """Detected offsets, or no crop at all if they would leave an empty image."""
    if is_valid_offsets(offsets, image.width, image.height):
        return offsets
    logger.warning("Ignoring invalid detected offsets %s for %s", offsets, name or "unnamed image")
    return Offsets()


class BatchController:
    """Ordered set of images with their crop state."""

    def __init__(self, white_threshold: int | None = None, match_first_crop: bool = False):
        self._items: list[ImageItem] = []
        self._white_threshold = normalize_threshold(white_threshold)
        self._match_first_crop = bool(match_first_crop)
        self._generation = 0
        self._listeners: list[Callable[[], None]] = []

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def items(self) -> list[ImageItem]:
        """Items in load order (a copy; mutate through the controller)."""
        return list(self._items)

    @property
    def white_threshold(self) -> int:
        return self._white_threshold

    @property
    def match_first_crop(self) -> bool:
        return self._match_first_crop

    @property
    def reference_id(self) -> str | None:
        """Id of the item whose crop is propagated in match mode."""
        return self._items[0].id if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> ImageItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def index_of(self, item_id: str) -> int:
        for i, item in enumerate(self._items):
            if item.id == item_id:
                return i
        raise KeyError(item_id)

    def export_order(self) -> list[ImageItem]:
        return export_order(self._items)

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self):
        for callback in list(self._listeners):
            callback()

    # =========================================================================
    # Loading / removal
    # =========================================================================

    def add_image(
        self,
        image: DecodedImage,
        name: str = "",
        path: Path | None = None,
        modified: float = 0.0,
    ) -> ImageItem:
        """Detect borders on ``image`` and append it to the batch."""
        auto = _checked(detect_offsets(image, self._white_threshold), image, name)
        item = ImageItem(
            image=image, auto_offsets=auto, offsets=auto,
            name=name, path=path, modified=modified,
        )
        self._items.append(item)
        self._refresh()
        self._notify()
        return item

    def load_paths(self, paths: list[Path]) -> tuple[list[ImageItem], list[tuple[Path, str]]]:
        """
        Decode and add each file in ``paths``.

        Files that fail to decode are logged and reported in the second
        return value as ``(path, error)``; they never stop the others.
        """
        added: list[ImageItem] = []
        failed: list[tuple[Path, str]] = []
        for path in paths:
            try:
                image = decode_image(path)
                modified = file_timestamp(path)
            except (OSError, ValueError) as exc:
                logger.warning("Could not decode %s: %s", path, exc)
                failed.append((path, str(exc)))
                continue
            added.append(self.add_image(image, name=path.name, path=path, modified=modified))
        logger.info("Loaded %d image(s), %d failed", len(added), len(failed))
        return added, failed

    def remove(self, item_id: str) -> ImageItem:
        """Remove an item; the next item becomes the reference if the first is removed."""
        item = self._items.pop(self.index_of(item_id))
        self._refresh()
        self._notify()
        return item

    # =========================================================================
    # Global settings
    # =========================================================================

    def set_white_threshold(self, value, detect: bool = True) -> int:
        """
        Change the global threshold and re-detect every image.

        With ``detect=False`` only the value is stored and the caller is
        expected to run ``begin_redetect`` / ``apply_detection`` itself, for
        example from a background thread.
        """
        self._white_threshold = normalize_threshold(value)
        self._generation += 1
        if detect:
            results = {item.id: detect_offsets(item.image, self._white_threshold) for item in self._items}
            self._apply_auto_offsets(results)
            self._refresh()
            self._notify()
        return self._white_threshold

    def begin_redetect(self) -> tuple[int, int, list[tuple[str, DecodedImage]]]:
        """
        Snapshot what a background re-detection needs.

        Returns ``(generation, threshold, [(item_id, image), ...])``.  Hand
        the detected offsets back through ``apply_detection`` with the same
        generation.
        """
        jobs = [(item.id, item.image) for item in self._items]
        return self._generation, self._white_threshold, jobs

    def apply_detection(self, generation: int, results: dict[str, Offsets]) -> bool:
        """
        Store offsets detected for ``generation``.

        Results from a superseded generation are discarded and False is
        returned.  Ids no longer in the batch are ignored.
        """
        if generation != self._generation:
            logger.debug("Discarding stale detection results (generation %d, current %d)",
                         generation, self._generation)
            return False
        self._apply_auto_offsets(results)
        self._refresh()
        self._notify()
        return True

    def set_match_first_crop(self, enabled: bool) -> None:
        self._match_first_crop = bool(enabled)
        self._refresh()
        self._notify()

    # =========================================================================
    # Per-item edits
    # =========================================================================

    def set_manual(self, item_id: str, manual: bool) -> ImageItem:
        """
        Switch an item between manual and automatic control.

        Entering manual mode keeps the current offsets as the starting
        point; leaving it hands the item back to automatic recomputation.
        """
        item = self.get(item_id)
        item.is_manual = bool(manual)
        self._refresh()
        self._notify()
        return item

    def edit_offset(self, item_id: str, side: str, value: int) -> ImageItem:
        """Set one offset of an item, taking manual control of it."""
        item = self.get(item_id)
        item.offsets = apply_edit(item.offsets, side, value, item.width, item.height)
        item.is_manual = True
        self._refresh()
        self._notify()
        return item

    def reset_to_auto(self, item_id: str) -> ImageItem:
        """Re-detect an item at the current threshold and drop manual control."""
        item = self.get(item_id)
        item.auto_offsets = _checked(detect_offsets(item.image, self._white_threshold), item.image, item.name)
        item.offsets = item.auto_offsets
        item.is_manual = False
        self._refresh()
        self._notify()
        return item

    # =========================================================================
    # Recomputation
    # =========================================================================

    def _apply_auto_offsets(self, results: dict[str, Offsets]):
        for item in self._items:
            offsets = results.get(item.id)
            if offsets is not None:
                item.auto_offsets = _checked(offsets, item.image, item.name)

    def _refresh(self):
        """Recompute effective offsets of every item not under manual control."""
        if not self._items:
            return
        reference = self._items[0]
        if not reference.is_manual:
            reference.offsets = reference.auto_offsets
        template = reference.offsets

        for item in self._items[1:]:
            if item.is_manual:
                continue
            if self._match_first_crop:
                item.offsets = adapt_offsets(template, item.width, item.height)
            else:
                item.offsets = item.auto_offsets
