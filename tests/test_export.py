"""
Tests for the export pipeline and the worker function.

Tests cover crop geometry, chronological naming, JPEG output, fail-fast
error handling, and the process-pool path.
"""

from pathlib import Path

import pytest
from PIL import Image

import card_crop_tool.export as export_module
from card_crop_tool.batch import BatchController
from card_crop_tool.export import ExportError, crop_box, export_batch, plan_export, render
from card_crop_tool.models import DecodedImage, ImageItem, Offsets
from card_crop_tool.worker import process_worker
from tests.conftest import card_image


def _item(width, height, offsets=Offsets(), name="x.png", modified=0.0, path=None):
    image = DecodedImage.from_pil(card_image(width, height))
    return ImageItem(image=image, auto_offsets=offsets, offsets=offsets, name=name, modified=modified, path=path)


class TestGeometry:
    """Tests for crop_box and render."""

    def test_crop_box(self):
        assert crop_box(Offsets(10, 20, 5, 15), 100, 80) == (5, 10, 85, 60)

    def test_crop_box_degenerate_offsets_keep_one_pixel(self):
        assert crop_box(Offsets(0, 0, 99, 99), 100, 80) == (99, 0, 100, 80)

    def test_render_scales_longest_side(self):
        box, out_w, out_h = render(_item(2000, 1000), 500)
        assert box == (0, 0, 2000, 1000)
        assert (out_w, out_h) == (500, 250)

    def test_render_small_crop_unchanged(self):
        _, out_w, out_h = render(_item(300, 200, Offsets(10, 10, 10, 10)), 500)
        assert (out_w, out_h) == (280, 180)


class TestPlanExport:
    """Tests for plan_export naming and ordering."""

    def test_names_follow_chronological_order(self, tmp_path):
        items = [
            _item(10, 10, name="late.png", modified=300.0),
            _item(10, 10, name="early.png", modified=100.0),
            _item(10, 10, name="middle.png", modified=200.0),
        ]
        jobs = plan_export(items, tmp_path, base_name="card", start_index=7)
        assert [(job.item.name, job.out_path.name) for job in jobs] == [
            ("early.png", "card7.jpg"),
            ("middle.png", "card8.jpg"),
            ("late.png", "card9.jpg"),
        ]

    def test_existing_file_is_not_overwritten(self, tmp_path):
        (tmp_path / "card1.jpg").write_bytes(b"keep")
        (job,) = plan_export([_item(10, 10)], tmp_path)
        assert job.out_path.name == "card1-01.jpg"


class TestExportBatch:
    """Tests for export_batch."""

    def test_writes_cropped_jpegs(self, tmp_path):
        items = [
            _item(2000, 1000, name="wide.png", modified=1.0),
            _item(300, 200, Offsets(10, 10, 10, 10), name="small.png", modified=2.0),
        ]
        progress = []
        written = export_batch(
            items, tmp_path / "out", base_name="card", start_index=1, max_dimension=500,
            progress=lambda done, total, name: progress.append((done, total, name)),
        )

        assert [p.name for p in written] == ["card1.jpg", "card2.jpg"]
        with Image.open(written[0]) as img:
            assert img.format == "JPEG"
            assert img.size == (500, 250)
        with Image.open(written[1]) as img:
            assert img.size == (280, 180)
        assert progress == [(1, 2, "wide.png"), (2, 2, "small.png")]

    def test_crop_uses_offsets(self, tmp_path):
        img = card_image(100, 100, (20, 20, 80, 80))
        item = ImageItem(
            image=DecodedImage.from_pil(img),
            auto_offsets=Offsets(20, 20, 20, 20),
            offsets=Offsets(20, 20, 20, 20),
            name="card.png",
        )
        (path,) = export_batch([item], tmp_path)
        with Image.open(path) as out:
            assert out.size == (60, 60)
            r, g, b = out.convert("RGB").getpixel((30, 30))
            assert r < 100 and b > 80

    def test_first_failure_stops_export(self, tmp_path, monkeypatch):
        real_save = export_module.save_jpeg
        calls = []

        def flaky_save(img, out_path, quality):
            calls.append(out_path.name)
            if len(calls) == 2:
                raise OSError("disk full")
            real_save(img, out_path, quality)

        monkeypatch.setattr(export_module, "save_jpeg", flaky_save)
        items = [_item(10, 10, name=f"{n}.png", modified=float(n)) for n in range(3)]

        with pytest.raises(ExportError) as excinfo:
            export_batch(items, tmp_path)

        assert excinfo.value.name == "1.png"
        assert excinfo.value.index == 2
        assert excinfo.value.path.name == "card2.jpg"
        assert "disk full" in str(excinfo.value)
        assert calls == ["card1.jpg", "card2.jpg"]
        assert not (tmp_path / "card3.jpg").exists()

    def test_parallel_export_keeps_numbering(self, tmp_path, write_card):
        batch = BatchController()
        batch.load_paths([
            write_card("b.png", 120, 80, mtime=2_000),
            write_card("a.png", 80, 120, mtime=1_000),
            write_card("c.png", 100, 100, mtime=3_000),
        ])

        written = export_batch(batch.items, tmp_path / "out", base_name="scan", workers=2)

        assert [p.name for p in written] == ["scan1.jpg", "scan2.jpg", "scan3.jpg"]
        sizes = []
        for p in written:
            with Image.open(p) as img:
                sizes.append(img.size)
        # c.png has a 1 px safety margin around its 80x80 card
        assert sizes == [(60, 100), (100, 60), (82, 82)]

    def test_parallel_failure_raises(self, tmp_path, write_card):
        batch = BatchController()
        good = write_card("good.png", 50, 50, mtime=1_000)
        gone = write_card("gone.png", 50, 50, mtime=2_000)
        batch.load_paths([good, gone])
        gone.unlink()

        with pytest.raises(ExportError) as excinfo:
            export_batch(batch.items, tmp_path / "out", workers=2)
        assert excinfo.value.name == "gone.png"


class TestProcessWorker:
    """Tests for process_worker."""

    def _args(self, src: Path, out: Path, **overrides):
        args = {
            "index": 4, "path": str(src), "img_w": 60, "img_h": 40,
            "out_path": str(out), "box": (10, 10, 50, 30), "size": (20, 10),
        }
        args.update(overrides)
        return args

    def test_writes_resized_crop(self, tmp_path, write_card):
        src = write_card("s.png", 60, 40)
        out = tmp_path / "nested" / "o.jpg"
        result = process_worker(self._args(src, out))
        assert result == {"index": 4, "success": True, "name": "s.png", "out_path": str(out)}
        with Image.open(out) as img:
            assert img.size == (20, 10)

    def test_missing_source_reports_error(self, tmp_path):
        result = process_worker(self._args(tmp_path / "nope.png", tmp_path / "o.jpg"))
        assert result["success"] is False
        assert result["name"] == "nope.png"
        assert result["error"]

    def test_changed_source_dimensions_report_error(self, tmp_path, write_card):
        src = write_card("s.png", 60, 40)
        result = process_worker(self._args(src, tmp_path / "o.jpg", img_w=61))
        assert result["success"] is False
        assert "expected 61x40" in result["error"]
