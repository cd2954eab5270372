"""
Tests for the command-line entry point.
"""

import argparse

import pytest
from PIL import Image

from card_crop_tool.cli import main, parse_offsets_arg


class TestParseOffsetsArg:
    """Tests for parse_offsets_arg."""

    def test_valid(self):
        assert parse_offsets_arg("scan 01.png=40,40,25,30") == ("scan 01.png", [40, 40, 25, 30])

    def test_name_may_contain_equals(self):
        assert parse_offsets_arg("a=b.png=1,2,3,4") == ("a=b.png", [1, 2, 3, 4])

    @pytest.mark.parametrize("text", ["a.png", "=1,2,3,4", "a.png=1,2,3", "a.png=1,2,x,4"])
    def test_invalid(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_offsets_arg(text)

    def test_invalid_flag_exits(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main([str(tmp_path), "--offsets", "broken"])
        assert excinfo.value.code == 2


class TestMain:
    """End-to-end runs of main()."""

    def test_dry_run_prints_plan(self, tmp_path, write_card, capsys):
        write_card("b.png", 120, 80, mtime=2_000)
        write_card("a.png", 80, 120, mtime=1_000)
        out_dir = tmp_path / "out"

        code = main([str(tmp_path / "in"), "-o", str(out_dir), "--dry-run", "--start-index", "5"])

        assert code == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines == [
            "a.png -> card5.jpg  T:10 B:10 L:10 R:10  60x100  (auto)",
            "b.png -> card6.jpg  T:10 B:10 L:10 R:10  100x60  (auto)",
        ]
        assert not out_dir.exists()

    def test_manual_offsets_are_applied(self, tmp_path, write_card, capsys):
        src = write_card("a.png", 80, 120)

        code = main([str(src), "--offsets", "a.png=5,5,5,5", "--dry-run"])

        assert code == 0
        assert capsys.readouterr().out.strip() == "a.png -> card1.jpg  T:5 B:5 L:5 R:5  70x110  (manual)"

    def test_export_writes_files(self, tmp_path, write_card, capsys):
        write_card("a.png", 80, 120, mtime=1_000)
        write_card("b.png", 120, 80, mtime=2_000)
        out_dir = tmp_path / "out"

        code = main([str(tmp_path / "in"), "-o", str(out_dir), "--base-name", "my deck", "--max-dimension", "50"])

        assert code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == ["my_deck1.jpg", "my_deck2.jpg"]
        with Image.open(out_dir / "my_deck1.jpg") as img:
            assert img.size == (30, 50)
        assert "Next start index: 3" in capsys.readouterr().out

    def test_no_images_returns_error(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        assert main([str(empty)]) == 1

    def test_undecodable_images_return_error(self, tmp_path):
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"junk")
        assert main([str(bad)]) == 1
