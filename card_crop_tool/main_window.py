"""
Main application window.

A thin observer of ``BatchController``: widgets forward user actions to the
controller, and ``_sync_from_batch`` redraws everything whenever the
controller reports a change.  Border re-detection after a threshold change
runs in a background thread; stale results are discarded by the controller.
"""

from pathlib import Path

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QGridLayout,
    QListWidget, QListWidgetItem, QPushButton, QLabel, QFileDialog,
    QSplitter, QGroupBox, QMessageBox, QProgressDialog, QStatusBar,
    QToolBar, QCheckBox, QSpinBox, QSlider, QLineEdit, QApplication,
    QScrollArea,
)
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QKeySequence, QShortcut

from card_crop_tool.batch import BatchController
from card_crop_tool.config import (
    IMAGE_EXTENSIONS, NUDGE_SMALL, NUDGE_LARGE,
    WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX,
)
from card_crop_tool.crop_widget import CropPreviewWidget, DetectionThread, decoded_to_qpixmap
from card_crop_tool.export import ExportError, export_batch
from card_crop_tool.image_io import scan_paths
from card_crop_tool.models import EDGES, axis_length, crop_size
from card_crop_tool.settings import (
    load_settings, save_settings,
    normalize_base_name, normalize_max_dimension, normalize_start_index,
)

_EDGE_LABELS = {"top": "Top", "bottom": "Bottom", "left": "Left", "right": "Right"}


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Card Batch Crop Tool")
        self.setMinimumSize(900, 500)

        # Screen-aware startup size, clamped to 80% of screen
        preferred_w, preferred_h = 1600, 1000
        screen = QApplication.primaryScreen()
        if screen is not None:
            avail = screen.availableGeometry()
            preferred_w = min(preferred_w, int(avail.width() * 0.8))
            preferred_h = min(preferred_h, int(avail.height() * 0.8))
        self.resize(preferred_w, preferred_h)

        self._settings = load_settings()
        self._batch = BatchController(
            white_threshold=self._settings.white_threshold,
            match_first_crop=self._settings.match_first_crop,
        )
        self._batch.subscribe(self._sync_from_batch)
        self._current_id: str | None = None
        self._pixmaps = {}  # item id -> QPixmap
        self._output_root: Path | None = None
        self._last_folder: Path | None = None
        self._detector: DetectionThread | None = None
        self._preview_id: str | None = None

        self._build_ui()
        self._sync_from_batch()

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)
        main_layout.setContentsMargins(4, 4, 4, 4)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        main_layout.addWidget(splitter)

        splitter.addWidget(self._build_left_panel())
        self._preview = CropPreviewWidget()
        splitter.addWidget(self._preview)
        splitter.addWidget(self._build_right_panel())
        splitter.setSizes([240, 800, 280])

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage("Add card images to begin.")

        QShortcut(QKeySequence(Qt.Key.Key_PageDown), self, self._next_image)
        QShortcut(QKeySequence(Qt.Key.Key_PageUp), self, self._prev_image)
        QShortcut(QKeySequence(Qt.Key.Key_Delete), self, self._remove_current)
        QShortcut(QKeySequence(Qt.Key.Key_M), self, self._toggle_manual_current)

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_files = QAction("🖼 Add Images", self)
        act_files.triggered.connect(self._add_files)
        toolbar.addAction(act_files)

        act_folder = QAction("📂 Add Folder", self)
        act_folder.triggered.connect(self._add_folder)
        toolbar.addAction(act_folder)

        toolbar.addSeparator()

        act_export = QAction("▶▶ Export All", self)
        act_export.setToolTip("Export every image as a cropped JPEG, numbered by file date")
        act_export.triggered.connect(self._export_all)
        toolbar.addAction(act_export)
        self._act_export = act_export

    def _build_left_panel(self) -> QWidget:
        left_panel = QWidget()
        left_layout = QVBoxLayout(left_panel)
        left_layout.setContentsMargins(0, 0, 0, 0)

        left_layout.addWidget(QLabel("Images:"))
        self._image_list = QListWidget()
        self._image_list.currentRowChanged.connect(self._on_image_selected)
        left_layout.addWidget(self._image_list)

        self._counter_label = QLabel("")
        self._counter_label.setStyleSheet("color: #aaa; font-size: 8pt; padding: 2px;")
        left_layout.addWidget(self._counter_label)
        return left_panel

    def _build_right_panel(self) -> QWidget:
        inner = QWidget()
        inner_layout = QVBoxLayout(inner)
        inner_layout.setContentsMargins(0, 0, 0, 0)
        inner_layout.addWidget(self._build_detection_group())
        inner_layout.addWidget(self._build_image_group())
        inner_layout.addWidget(self._build_export_group())
        inner_layout.addStretch()

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(inner)
        scroll.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        scroll.setFrameShape(scroll.Shape.NoFrame)

        right_panel = QWidget()
        right_panel.setFixedWidth(280)
        right_layout = QVBoxLayout(right_panel)
        right_layout.setContentsMargins(4, 0, 0, 0)
        right_layout.addWidget(scroll)
        return right_panel

    def _build_detection_group(self) -> QGroupBox:
        group = QGroupBox("Detection")
        layout = QVBoxLayout(group)

        row = QHBoxLayout()
        row.addWidget(QLabel("White threshold:"))
        self._threshold = QSpinBox()
        self._threshold.setRange(WHITE_THRESHOLD_MIN, WHITE_THRESHOLD_MAX)
        self._threshold.setValue(self._batch.white_threshold)
        self._threshold.setKeyboardTracking(False)
        self._threshold.valueChanged.connect(self._on_threshold_changed)
        row.addWidget(self._threshold)
        layout.addLayout(row)

        self._match_first = QCheckBox("Match first image's crop")
        self._match_first.setToolTip("Apply the first image's crop to every image not set manually")
        self._match_first.setChecked(self._batch.match_first_crop)
        self._match_first.toggled.connect(self._on_match_toggled)
        layout.addWidget(self._match_first)
        return group

    def _build_image_group(self) -> QGroupBox:
        group = QGroupBox("Image")
        layout = QVBoxLayout(group)

        self._manual = QCheckBox("Manual offsets")
        self._manual.toggled.connect(self._on_manual_toggled)
        layout.addWidget(self._manual)

        grid = QGridLayout()
        self._sliders: dict[str, QSlider] = {}
        self._slider_values: dict[str, QLabel] = {}
        for row, side in enumerate(EDGES):
            grid.addWidget(QLabel(_EDGE_LABELS[side]), row, 0)
            slider = QSlider(Qt.Orientation.Horizontal)
            slider.setSingleStep(NUDGE_SMALL)
            slider.setPageStep(NUDGE_LARGE)
            slider.valueChanged.connect(lambda value, s=side: self._on_slider_moved(s, value))
            grid.addWidget(slider, row, 1)
            value_label = QLabel("0")
            value_label.setFixedWidth(40)
            grid.addWidget(value_label, row, 2)
            self._sliders[side] = slider
            self._slider_values[side] = value_label
        layout.addLayout(grid)

        self._crop_info_label = QLabel("Crop: —")
        self._crop_info_label.setWordWrap(True)
        layout.addWidget(self._crop_info_label)

        btn_reset = QPushButton("🎯 Reset to Auto")
        btn_reset.setToolTip("Re-detect the border and drop manual offsets")
        btn_reset.clicked.connect(self._reset_current)
        layout.addWidget(btn_reset)
        self._btn_reset = btn_reset

        btn_remove = QPushButton("✖ Remove Image")
        btn_remove.clicked.connect(self._remove_current)
        layout.addWidget(btn_remove)
        self._btn_remove = btn_remove
        return group

    def _build_export_group(self) -> QGroupBox:
        group = QGroupBox("Export Settings")
        layout = QGridLayout(group)

        layout.addWidget(QLabel("Max side:"), 0, 0)
        self._max_dimension = QSpinBox()
        self._max_dimension.setRange(1, 20000)
        self._max_dimension.setSuffix(" px")
        self._max_dimension.setValue(self._settings.max_dimension)
        layout.addWidget(self._max_dimension, 0, 1)

        layout.addWidget(QLabel("File name:"), 1, 0)
        self._base_name = QLineEdit(self._settings.base_name)
        layout.addWidget(self._base_name, 1, 1)

        layout.addWidget(QLabel("Start index:"), 2, 0)
        self._start_index = QSpinBox()
        self._start_index.setRange(-999999, 999999)
        self._start_index.setValue(self._settings.start_index)
        layout.addWidget(self._start_index, 2, 1)
        return group

    # =========================================================================
    # Image loading
    # =========================================================================

    def _add_files(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        paths, _ = QFileDialog.getOpenFileNames(
            self, "Add Images", str(self._last_folder or Path.home()), f"Images ({patterns})",
        )
        if paths:
            self._last_folder = Path(paths[0]).parent
            self.load_paths([Path(p) for p in paths])

    def _add_folder(self):
        folder = QFileDialog.getExistingDirectory(self, "Add Folder", str(self._last_folder or Path.home()))
        if folder:
            self._last_folder = Path(folder)
            self.load_paths(scan_paths([Path(folder)]))

    def load_paths(self, paths: list[Path]):
        """Decode ``paths`` into the batch with a progress dialog; failures are listed afterwards."""
        if not paths:
            self._status.showMessage("No supported images found.")
            return

        progress = QProgressDialog("Loading images…", "Cancel", 0, len(paths), self)
        progress.setWindowModality(Qt.WindowModality.WindowModal)
        progress.setMinimumDuration(0)

        failed = []
        for i, path in enumerate(paths):
            if progress.wasCanceled():
                break
            progress.setValue(i)
            progress.setLabelText(f"Reading: {path.name}  ({i + 1}/{len(paths)})")
            _, errors = self._batch.load_paths([path])
            failed.extend(errors)
        progress.setValue(len(paths))

        if self._current_id is None and len(self._batch):
            self._image_list.setCurrentRow(0)
        msg = f"{len(self._batch)} image(s) in batch"
        if failed:
            msg += f"  ·  {len(failed)} could not be read"
            names = "\n".join(f"• {p.name}: {err}" for p, err in failed[:10])
            QMessageBox.warning(self, "Some images were skipped", names)
        self._status.showMessage(msg)

    # =========================================================================
    # Batch observer
    # =========================================================================

    def _sync_from_batch(self):
        """Rebuild the list and the per-image controls from the controller."""
        items = self._batch.items
        ids = [item.id for item in items]
        self._pixmaps = {k: v for k, v in self._pixmaps.items() if k in ids}
        if self._current_id not in ids:
            self._current_id = ids[0] if ids else None

        reference_id = self._batch.reference_id
        self._image_list.blockSignals(True)
        self._image_list.clear()
        for item in items:
            icon = "✋" if item.is_manual else ("⭐" if item.id == reference_id else "🔍")
            self._image_list.addItem(QListWidgetItem(f"  {icon}  {item.name}  ({item.width}×{item.height})"))
        if self._current_id is not None:
            self._image_list.setCurrentRow(ids.index(self._current_id))
        self._image_list.blockSignals(False)

        manual = sum(1 for item in items if item.is_manual)
        self._counter_label.setText(f"  {len(items)} image(s)  ·  ✋ {manual} manual  " if items else "")
        self._act_export.setEnabled(bool(items))
        self._update_image_controls()

    def _update_image_controls(self):
        item = self._batch.get(self._current_id) if self._current_id else None
        for w in (self._manual, self._btn_reset, self._btn_remove):
            w.setEnabled(item is not None)

        if item is None:
            self._preview.clear()
            self._crop_info_label.setText("Crop: —")
            for side in EDGES:
                self._sliders[side].setEnabled(False)
                self._slider_values[side].setText("—")
            return

        if item.id not in self._pixmaps:
            self._pixmaps[item.id] = decoded_to_qpixmap(item.image)
        if not self._preview.has_image() or self._preview_id != item.id:
            self._preview.set_image(self._pixmaps[item.id], item.width, item.height)
            self._preview_id = item.id
        self._preview.set_offsets(item.offsets, item.is_manual)

        self._manual.blockSignals(True)
        self._manual.setChecked(item.is_manual)
        self._manual.blockSignals(False)

        for side in EDGES:
            slider = self._sliders[side]
            slider.blockSignals(True)
            slider.setRange(0, axis_length(side, item.width, item.height) - 1)
            slider.setValue(getattr(item.offsets, side))
            slider.setEnabled(item.is_manual)
            slider.blockSignals(False)
            self._slider_values[side].setText(str(getattr(item.offsets, side)))

        crop_w, crop_h = crop_size(item.offsets, item.width, item.height)
        role = "reference" if item.id == self._batch.reference_id else ("manual" if item.is_manual else "auto")
        self._crop_info_label.setText(
            f"Source: {item.width}×{item.height}\n"
            f"Crop: {crop_w}×{crop_h}  ({role})"
        )

    # =========================================================================
    # User actions
    # =========================================================================

    def _on_image_selected(self, row: int):
        items = self._batch.items
        self._current_id = items[row].id if 0 <= row < len(items) else None
        self._update_image_controls()

    def _prev_image(self):
        row = self._image_list.currentRow()
        if row > 0:
            self._image_list.setCurrentRow(row - 1)

    def _next_image(self):
        row = self._image_list.currentRow()
        if row < self._image_list.count() - 1:
            self._image_list.setCurrentRow(row + 1)

    def _on_slider_moved(self, side: str, value: int):
        if self._current_id is None or not self._batch.get(self._current_id).is_manual:
            return
        self._batch.edit_offset(self._current_id, side, value)

    def _on_manual_toggled(self, checked: bool):
        if self._current_id is not None:
            self._batch.set_manual(self._current_id, checked)

    def _toggle_manual_current(self):
        if self._current_id is not None:
            self._manual.setChecked(not self._manual.isChecked())

    def _reset_current(self):
        if self._current_id is not None:
            self._batch.reset_to_auto(self._current_id)

    def _remove_current(self):
        if self._current_id is None:
            return
        removed = self._batch.remove(self._current_id)
        self._status.showMessage(f"Removed {removed.name}")

    def _on_match_toggled(self, checked: bool):
        self._batch.set_match_first_crop(checked)

    def _on_threshold_changed(self, value: int):
        self._batch.set_white_threshold(value, detect=False)
        if self._detector is not None and self._detector.isRunning():
            self._detector.requestInterruption()

        generation, threshold, jobs = self._batch.begin_redetect()
        self._status.showMessage(f"Re-detecting borders at threshold {threshold}…")
        detector = DetectionThread(generation, threshold, jobs, self)
        detector.detected.connect(self._on_detection_finished)
        detector.finished.connect(lambda d=detector: self._release_detector(d))
        self._detector = detector
        detector.start()

    def _release_detector(self, detector: DetectionThread):
        if self._detector is detector:
            self._detector = None
        detector.deleteLater()

    def _on_detection_finished(self, generation: int, results: dict):
        if self._batch.apply_detection(generation, results):
            self._status.showMessage(f"Borders updated at threshold {self._batch.white_threshold}")

    # =========================================================================
    # Export
    # =========================================================================

    def _ensure_output_folder(self) -> bool:
        folder = QFileDialog.getExistingDirectory(self, "Select Output Folder", str(self._output_root or Path.home()))
        if not folder:
            return False
        self._output_root = Path(folder)
        return True

    def _export_all(self):
        if not len(self._batch) or not self._ensure_output_folder():
            return

        max_dimension = normalize_max_dimension(self._max_dimension.value())
        base_name = normalize_base_name(self._base_name.text())
        start_index = normalize_start_index(self._start_index.value())
        total = len(self._batch)

        progress = QProgressDialog("Exporting…", None, 0, total, self)
        progress.setWindowModality(Qt.WindowModality.WindowModal)
        progress.setMinimumDuration(0)

        def on_progress(done: int, count: int, name: str):
            progress.setValue(done)
            progress.setLabelText(f"Exporting: {name}  ({done}/{count})")
            QApplication.processEvents()

        try:
            written = export_batch(
                self._batch.items, self._output_root,
                base_name=base_name,
                start_index=start_index,
                max_dimension=max_dimension,
                progress=on_progress,
            )
        except ExportError as exc:
            progress.close()
            QMessageBox.critical(self, "Export stopped", str(exc))
            return
        progress.setValue(total)

        # Continue numbering from where this export stopped
        self._start_index.setValue(start_index + len(written))
        self._base_name.setText(base_name)
        self._save_settings()
        self._status.showMessage(f"Exported {len(written)} image(s) to {self._output_root}")

    # =========================================================================
    # Settings persistence
    # =========================================================================

    def _save_settings(self):
        self._settings.white_threshold = self._batch.white_threshold
        self._settings.match_first_crop = self._batch.match_first_crop
        self._settings.max_dimension = normalize_max_dimension(self._max_dimension.value())
        self._settings.base_name = normalize_base_name(self._base_name.text())
        self._settings.start_index = normalize_start_index(self._start_index.value())
        try:
            save_settings(self._settings)
        except OSError as exc:
            self._status.showMessage(f"Could not save settings: {exc}")

    def closeEvent(self, event):
        """Stop background detection and persist settings before closing."""
        if self._detector is not None and self._detector.isRunning():
            self._detector.requestInterruption()
            self._detector.wait(2000)
        self._save_settings()
        super().closeEvent(event)
