"""
Crop preview widget and Qt image helpers.

This module contains everything that touches both Qt **and** image display:
``decoded_to_qpixmap``, the background ``DetectionThread`` used when the
threshold changes, and the ``CropPreviewWidget`` that shows an image with
its current crop.
"""

from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, pyqtSignal, QThread
from PyQt6.QtGui import QPainter, QPixmap, QColor, QPen, QImage, QPaintEvent, QResizeEvent

from card_crop_tool.config import PREVIEW_MAX_SIDE
from card_crop_tool.detection import detect_offsets
from card_crop_tool.models import DecodedImage, Offsets, crop_size, fit_within


# =============================================================================
# Qt ↔ buffer helpers
# =============================================================================

def decoded_to_qpixmap(image: DecodedImage) -> QPixmap:
    """Convert a DecodedImage to QPixmap."""
    qimg = QImage(image.pixels, image.width, image.height, image.width * 4, QImage.Format.Format_RGBA8888)
    # QImage does not own the buffer; copy before the bytes can go away
    return QPixmap.fromImage(qimg.copy())


# =============================================================================
# Background re-detection
# =============================================================================

class DetectionThread(QThread):
    """Re-runs border detection for a snapshot of the batch."""
    detected = pyqtSignal(int, dict)  # generation, {item_id: Offsets}

    def __init__(self, generation: int, threshold: int, jobs: list[tuple[str, DecodedImage]], parent=None):
        super().__init__(parent)
        self._generation = generation
        self._threshold = threshold
        self._jobs = jobs

    def run(self):
        results = {}
        for item_id, image in self._jobs:
            if self.isInterruptionRequested():
                return
            results[item_id] = detect_offsets(image, self._threshold)
        self.detected.emit(self._generation, results)


# =============================================================================
# Crop Preview Widget: image with dimmed margins
# =============================================================================

class CropPreviewWidget(QWidget):
    """Displays an image with the area outside the crop dimmed."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 300)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self._pixmap: QPixmap | None = None
        self._img_w = 0
        self._img_h = 0
        self._offsets = Offsets()
        self._is_manual = False

        # Display mapping
        self._scale = 1.0
        self._offset_x = 0.0
        self._offset_y = 0.0

    def set_image(self, pixmap: QPixmap, img_w: int, img_h: int):
        """Set the image to display."""
        self._pixmap = pixmap
        self._img_w = img_w
        self._img_h = img_h
        self._update_display_mapping()
        self.update()

    def set_offsets(self, offsets: Offsets, is_manual: bool = False):
        self._offsets = offsets
        self._is_manual = is_manual
        self.update()

    def has_image(self) -> bool:
        return self._pixmap is not None

    def clear(self):
        self._pixmap = None
        self._img_w = 0
        self._img_h = 0
        self._offsets = Offsets()
        self.update()

    # --- Coordinate mapping ---

    def _update_display_mapping(self):
        """Calculate scale and offset to fit image in widget with letterboxing."""
        if not self._pixmap or self._img_w == 0 or self._img_h == 0:
            return
        ww, wh = self.width(), self.height()
        self._scale = min(ww / self._img_w, wh / self._img_h)
        self._offset_x = (ww - self._img_w * self._scale) / 2
        self._offset_y = (wh - self._img_h * self._scale) / 2

    def _img_rect(self, x: float, y: float, w: float, h: float) -> QRectF:
        return QRectF(
            x * self._scale + self._offset_x,
            y * self._scale + self._offset_y,
            w * self._scale,
            h * self._scale,
        )

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.fillRect(self.rect(), QColor(30, 30, 30))

        if not self._pixmap:
            painter.setPen(QColor(128, 128, 128))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "No image selected")
            painter.end()
            return

        dest = self._img_rect(0, 0, self._img_w, self._img_h)
        painter.drawPixmap(dest.toRect(), self._pixmap)

        o = self._offsets
        crop_w, crop_h = crop_size(o, self._img_w, self._img_h)
        crop_rect = self._img_rect(o.left, o.top, crop_w, crop_h)

        # Dim area outside crop
        dim = QColor(0, 0, 0, 140)
        painter.fillRect(QRectF(dest.left(), dest.top(), dest.width(), crop_rect.top() - dest.top()), dim)
        painter.fillRect(QRectF(dest.left(), crop_rect.bottom(), dest.width(), dest.bottom() - crop_rect.bottom()), dim)
        painter.fillRect(QRectF(dest.left(), crop_rect.top(), crop_rect.left() - dest.left(), crop_rect.height()), dim)
        painter.fillRect(QRectF(crop_rect.right(), crop_rect.top(), dest.right() - crop_rect.right(), crop_rect.height()), dim)

        # Crop border: white for auto, amber for manual
        border = QColor(255, 190, 60) if self._is_manual else QColor(255, 255, 255)
        painter.setPen(QPen(border, 2))
        painter.drawRect(crop_rect)

        # Cropped size and the size of the card preview
        prev_w, prev_h = fit_within(crop_w, crop_h, PREVIEW_MAX_SIDE)
        painter.setPen(QColor(255, 255, 255))
        painter.drawText(
            crop_rect.adjusted(0, -20, 0, 0).toRect(),
            Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignBottom,
            f"{crop_w} × {crop_h}  (preview {prev_w} × {prev_h})",
        )

        painter.end()

    def resizeEvent(self, event: QResizeEvent):
        self._update_display_mapping()
        super().resizeEvent(event)
