"""Shared fixtures for Panorama Gallery tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from gallery_config import GalleryConfig


# ── Tiny test image helpers ───────────────────────────────────


def _create_test_image(path: Path, width: int = 64, height: int = 32) -> Path:
    """Create a minimal valid image at *path* (format from the suffix)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", (width, height), color=(128, 128, 128))
    fmt = "PNG" if path.suffix.lower() == ".png" else "JPEG"
    img.save(path, format=fmt)
    return path


def make_images(directory: Path, *names: str) -> Path:
    """Create *directory* holding one tiny image per name."""
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        _create_test_image(directory / name)
    return directory


# ── Gallery trees ─────────────────────────────────────────────


@pytest.fixture()
def gallery_root(tmp_path: Path) -> Path:
    """Gallery with a welcome image, two root images and two folders.

    images/
        Welcome.jpg  a.jpg  b.jpg  .hidden.jpg  notes.txt
        Bridge/   dock.jpg  Span View.jpeg
        Empty/    readme.txt
        .cache/   cached.jpg
    """
    root = make_images(tmp_path / "images", "Welcome.jpg", "a.jpg", "b.jpg", ".hidden.jpg")
    (root / "notes.txt").write_text("not an image")
    make_images(root / "Bridge", "dock.jpg", "Span View.jpeg")
    (root / "Empty").mkdir()
    (root / "Empty" / "readme.txt").write_text("nothing here")
    make_images(root / ".cache", "cached.jpg")
    return root


@pytest.fixture()
def plain_root(tmp_path: Path) -> Path:
    """Root with two images and no welcome image."""
    return make_images(tmp_path / "plain", "a.jpg", "b.jpg")


@pytest.fixture()
def gallery_config(gallery_root: Path) -> GalleryConfig:
    return GalleryConfig(root=gallery_root)
