"""
Tests for the main window, run on Qt's offscreen platform.

Covers background re-detection after threshold changes, cleanup of the
detection threads, and loading paths passed at startup.
"""

import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PyQt6.QtWidgets")

from PyQt6.QtCore import QCoreApplication, QEvent  # noqa: E402

from card_crop_tool.app import build_parser  # noqa: E402
from card_crop_tool.crop_widget import DetectionThread  # noqa: E402
from card_crop_tool.main_window import MainWindow  # noqa: E402
from card_crop_tool.models import Offsets  # noqa: E402

GRAY = (230, 230, 230)


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


@pytest.fixture
def window(qapp):
    win = MainWindow()
    yield win
    win.close()
    win.deleteLater()
    _drain_events(qapp)


def _drain_events(qapp):
    qapp.processEvents()
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)


def _finish(qapp, *threads):
    for thread in threads:
        assert thread.wait(10_000)
    _drain_events(qapp)


class TestThresholdRedetection:
    """Tests for the threshold spin box and DetectionThread lifecycle."""

    def test_detection_result_applied_and_thread_released(self, qapp, window, make_card):
        item = window._batch.add_image(make_card(200, 200, margin=20, background=GRAY), name="gray.png")
        assert item.offsets == Offsets(0, 0, 0, 0)

        window._threshold.setValue(220)
        thread = window._detector
        _finish(qapp, thread)

        assert item.offsets == Offsets(19, 19, 19, 19)
        assert window._detector is None
        assert window.findChildren(DetectionThread) == []

    def test_superseded_threads_do_not_accumulate(self, qapp, window, make_card):
        item = window._batch.add_image(make_card(200, 200, margin=20, background=GRAY), name="gray.png")

        threads = []
        for value in (235, 228, 220):
            window._threshold.setValue(value)
            threads.append(window._detector)
        _finish(qapp, *threads)

        assert window._batch.white_threshold == 220
        assert item.offsets == Offsets(19, 19, 19, 19)
        assert window.findChildren(DetectionThread) == []


class TestStartupPaths:
    """Tests for loading images named on the command line."""

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.paths == [] and not args.recursive

    def test_load_paths_fills_batch(self, qapp, window, write_card):
        window.load_paths([write_card("a.png", 80, 120), write_card("b.png", 120, 80)])
        _drain_events(qapp)

        assert [item.name for item in window._batch.items] == ["a.png", "b.png"]
        assert window._image_list.count() == 2
        assert window._preview.has_image()
