"""
Tests for image loading helpers.
"""

import numpy as np
from PIL import Image

from card_crop_tool.detection import detect_offsets
from card_crop_tool.image_io import decode_image, open_image, scan_paths, to_8bit, unique_path
from card_crop_tool.models import Offsets


class TestBitDepth:
    """Tests for high bit depth grayscale scans."""

    def _write_16bit_scan(self, path):
        levels = np.full((200, 200), 65535, dtype=np.uint16)
        levels[20:180, 20:180] = 8000
        Image.fromarray(levels).save(path)
        return path

    def test_16bit_scan_keeps_its_card(self, tmp_path):
        path = self._write_16bit_scan(tmp_path / "scan16.png")
        image = decode_image(path)
        assert detect_offsets(image, 245) == Offsets(19, 19, 19, 19)

    def test_16bit_values_scaled_not_clipped(self, tmp_path):
        img = open_image(self._write_16bit_scan(tmp_path / "scan16.png"))
        assert img.mode == "L"
        assert img.getpixel((0, 0)) >= 254
        assert img.getpixel((100, 100)) == 31

    def test_8bit_range_int_image_unchanged(self):
        img = Image.new("I", (4, 4), 200)
        assert to_8bit(img) is img

    def test_rgb_image_unchanged(self):
        img = Image.new("RGB", (4, 4), (1, 2, 3))
        assert to_8bit(img) is img


class TestPaths:
    """Tests for scan_paths and unique_path."""

    def test_scan_paths_filters_and_sorts(self, tmp_path):
        for name in ("b.PNG", "a.jpg", "notes.txt"):
            (tmp_path / name).write_bytes(b"")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "c.png").write_bytes(b"")

        assert [p.name for p in scan_paths([tmp_path])] == ["a.jpg", "b.PNG"]
        assert [p.name for p in scan_paths([tmp_path], recursive=True)] == ["a.jpg", "b.PNG", "c.png"]
        assert scan_paths([tmp_path / "notes.txt"]) == []

    def test_unique_path(self, tmp_path):
        target = tmp_path / "card1.jpg"
        assert unique_path(target) == target
        target.write_bytes(b"")
        (tmp_path / "card1-01.jpg").write_bytes(b"")
        assert unique_path(target) == tmp_path / "card1-02.jpg"
