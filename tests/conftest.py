"""
Pytest configuration and shared fixtures for card crop tool tests.

Synthetic "scans" are built with Pillow: a white sheet with a solid
coloured card pasted inside it.
"""

import os
from pathlib import Path

import pytest
from PIL import Image

from card_crop_tool.models import DecodedImage

WHITE = (255, 255, 255)
CARD = (40, 60, 120)


def card_image(width, height, box=None, background=WHITE, fill=CARD) -> Image.Image:
    """White ``width`` × ``height`` image with ``fill`` covering ``box`` (left, top, right, bottom)."""
    img = Image.new("RGB", (width, height), background)
    if box is not None:
        img.paste(fill, box)
    return img


@pytest.fixture
def make_card():
    """
    Factory for decoded synthetic scans.

    ``make_card(w, h, margin)`` centres a card with ``margin`` pixels of
    white on every side; pass ``box=`` for an arbitrary card rectangle.
    """
    def _make(width, height, margin=None, box=None, **kwargs) -> DecodedImage:
        if margin is not None:
            box = (margin, margin, width - margin, height - margin)
        return DecodedImage.from_pil(card_image(width, height, box, **kwargs))
    return _make


@pytest.fixture
def write_card(tmp_path):
    """Factory that saves a synthetic scan as PNG and sets its modification time."""
    def _write(name, width, height, margin=10, mtime=None) -> Path:
        path = tmp_path / "in" / name
        path.parent.mkdir(exist_ok=True)
        card_image(width, height, (margin, margin, width - margin, height - margin)).save(path)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path
    return _write


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep settings files out of the real user config directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "config"))
