"""
Static configuration for the panorama gallery.

Values are read once at process start (``load_config``) from ``PANO_*``
environment variables and then shared, read-only, by every request.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_GALLERY_ROOT = "images"
DEFAULT_IMAGES_URL = "images"
DEFAULT_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})
DEFAULT_WELCOME_FILE = "welcome.jpg"
DEFAULT_FOV = 105  # lower = more zoomed
DEFAULT_AUTO_ROTATE = -2.0  # higher = faster
DEFAULT_AUTHOR = "Emil"
DEFAULT_SITE_TITLE = "Renstar Panorama Viewer"
DEFAULT_DESCRIPTION = "Panorama Photos for All Occasions!"

MIN_FOV = 50
MAX_FOV = 120


def clamp_fov(value: float) -> int:
    """Clamp a field-of-view to the range the viewer accepts."""
    if not math.isfinite(value):
        raise ValueError(f"Field of view must be a finite number, got {value!r}")
    return max(MIN_FOV, min(MAX_FOV, int(value)))


def parse_extensions(raw: str) -> frozenset[str]:
    """``"JPG, .png"`` -> ``{"jpg", "png"}``."""
    exts = {part.strip().lstrip(".").lower() for part in raw.split(",")}
    exts.discard("")
    if not exts:
        raise ValueError(f"No image extensions in {raw!r}")
    return frozenset(exts)


@dataclass(frozen=True)
class GalleryConfig:
    root: Path = Path(DEFAULT_GALLERY_ROOT)
    images_url: str = DEFAULT_IMAGES_URL
    allowed_extensions: frozenset[str] = field(default=DEFAULT_EXTENSIONS)
    welcome_file: str = DEFAULT_WELCOME_FILE
    default_fov: int = DEFAULT_FOV
    auto_rotate: float = DEFAULT_AUTO_ROTATE
    author: str = DEFAULT_AUTHOR
    site_title: str = DEFAULT_SITE_TITLE
    description: str = DEFAULT_DESCRIPTION

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "root", Path(self.root))
        object.__setattr__(self, "images_url", self.images_url.strip("/"))
        object.__setattr__(
            self,
            "allowed_extensions",
            frozenset(e.lstrip(".").lower() for e in self.allowed_extensions),
        )
        object.__setattr__(self, "default_fov", clamp_fov(self.default_fov))

    def with_overrides(self, **changes) -> "GalleryConfig":
        """Copy with the non-None *changes* applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_config(environ: Optional[Mapping[str, str]] = None) -> GalleryConfig:
    """Build a :class:`GalleryConfig` from ``PANO_*`` environment variables.

    Raises ValueError for values that cannot be parsed (bad numbers, empty
    extension list) so misconfiguration is caught at startup.
    """
    env = os.environ if environ is None else environ

    def _get(name: str) -> Optional[str]:
        value = env.get(name)
        return value if value not in (None, "") else None

    exts = _get("PANO_ALLOWED_EXTENSIONS")
    fov = _get("PANO_DEFAULT_FOV")
    spin = _get("PANO_AUTO_ROTATE")

    try:
        return GalleryConfig().with_overrides(
            root=_get("PANO_GALLERY_ROOT"),
            images_url=_get("PANO_IMAGES_URL"),
            allowed_extensions=parse_extensions(exts) if exts else None,
            welcome_file=_get("PANO_WELCOME_FILE"),
            default_fov=float(fov) if fov else None,
            auto_rotate=float(spin) if spin else None,
            author=_get("PANO_AUTHOR"),
            site_title=_get("PANO_SITE_TITLE"),
            description=_get("PANO_DESCRIPTION"),
        )
    except ValueError as e:
        raise ValueError(f"Invalid gallery configuration: {e}") from e
