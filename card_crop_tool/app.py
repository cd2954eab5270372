"""
GUI entry point.

Usage:
    python -m card_crop_tool.app [scans/ card.jpg ...]
    card-crop-tool [-r] [-v] [PATH ...]      (after pip install)

Paths given on the command line are loaded into the batch at startup.
"""

import argparse
import logging
import sys
from pathlib import Path

from PyQt6.QtWidgets import QApplication

from card_crop_tool.image_io import scan_paths
from card_crop_tool.main_window import MainWindow

# Dark theme for the widgets the window uses; the amber accent matches the
# manual-crop border drawn by the preview.
DARK_STYLESHEET = """
    QWidget { background: #262626; color: #ddd; font-size: 10pt; }
    QToolBar { background: #303030; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #303030; border-top: 1px solid #444; }
    QListWidget { background: #1b1b1b; border: 1px solid #444; }
    QListWidget::item { padding: 3px; }
    QListWidget::item:selected { background: #3a6ea5; }
    QGroupBox { border: 1px solid #4a4a4a; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #383838; border: 1px solid #555; border-radius: 4px; padding: 5px 10px; }
    QPushButton:hover { background: #474747; }
    QPushButton:disabled, QCheckBox:disabled, QLabel:disabled { color: #666; }
    QLineEdit, QSpinBox { background: #1b1b1b; border: 1px solid #555; border-radius: 3px; padding: 2px 4px; }
    QSlider::groove:horizontal { height: 4px; background: #444; border-radius: 2px; }
    QSlider::handle:horizontal { width: 12px; margin: -5px 0; background: #e0a030; border-radius: 6px; }
    QSlider::handle:horizontal:disabled { background: #555; }
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="card-crop-tool", description="Interactive card border cropper.")
    parser.add_argument("paths", nargs="*", type=Path, help="Image files or folders to load at startup")
    parser.add_argument("-r", "--recursive", action="store_true", help="Scan folders recursively")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv[:1])
    app.setStyleSheet(DARK_STYLESHEET)

    window = MainWindow()
    window.show()
    if args.paths:
        window.load_paths(scan_paths(args.paths, recursive=args.recursive))

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
