#!/usr/bin/env python3
"""
Panorama Gallery — resolve a two-level image folder into Pannellum scenes.

Scans the gallery root and one level of subfolders, decides whether the
visitor is at the root or inside a folder, builds uniquely-keyed scenes
and picks the initially active one from ``dir`` / ``scene`` / ``image``
request hints.

Usage:
    python panorama_gallery.py --root images
    python panorama_gallery.py --root images --dir Bridge --scene bridge-dock

Web UI:
    python server.py
"""

from __future__ import annotations

import argparse
import json
import re
import string
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import quote

from gallery_config import MAX_FOV, MIN_FOV, GalleryConfig, clamp_fov, load_config

# ---------------------------------------------------------------------------
# Filesystem scanner
# ---------------------------------------------------------------------------

_DIGITS = re.compile(r"(\d+)")


def natural_key(name: str) -> tuple:
    """Case-insensitive, numeric-aware sort key ("img2" before "img10").

    The raw name is appended so names differing only in case keep a
    stable order.
    """
    parts = _DIGITS.split(name.lower())
    return (
        tuple(int(p) if i % 2 else p for i, p in enumerate(parts)),
        name,
    )


def _children(directory: Path) -> list[Path]:
    """Non-hidden direct children of *directory*; missing/unreadable -> []."""
    try:
        return [p for p in directory.iterdir() if not p.name.startswith(".")]
    except OSError:
        return []


def is_allowed_image(filename: str, allowed_extensions: Iterable[str]) -> bool:
    return Path(filename).suffix.lower().lstrip(".") in set(allowed_extensions)


def list_subdirectories(root: Path) -> list[str]:
    """Names of the visible subdirectories of *root*, naturally sorted."""
    names = [p.name for p in _children(Path(root)) if p.is_dir()]
    return sorted(names, key=natural_key)


def list_images(directory: Path, allowed_extensions: Iterable[str]) -> list[str]:
    """Visible image filenames in *directory* (non-recursive, naturally sorted)."""
    allowed = {e.lstrip(".").lower() for e in allowed_extensions}
    names = [
        p.name
        for p in _children(Path(directory))
        if p.is_file() and is_allowed_image(p.name, allowed)
    ]
    return sorted(names, key=natural_key)


def find_case_insensitive(needle: str, names: Iterable[str]) -> Optional[str]:
    """Return the entry of *names* equal to *needle* ignoring case."""
    target = needle.lower()
    for name in names:
        if name.lower() == target:
            return name
    return None


# ---------------------------------------------------------------------------
# Labels & slugs
# ---------------------------------------------------------------------------

_EXTENSION = re.compile(r"\.[a-z0-9]+$", re.IGNORECASE | re.ASCII)
_NON_SLUG = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def clean_label(name: str) -> str:
    """``"some-file_name.jpg"`` -> ``"Some File Name"``."""
    base = _EXTENSION.sub("", name)
    base = base.replace("_", " ").replace("-", " ")
    base = _WHITESPACE.sub(" ", base.strip())
    return " ".join(word[:1].upper() + word[1:].lower() for word in base.split(" "))


def slugify(text: str) -> str:
    """Lowercase ``[a-z0-9-]`` token; falls back to ``"scene"``.

    Only ASCII letters are lowered; other characters become separators.
    """
    s = _EXTENSION.sub("", text.translate(_ASCII_LOWER))
    s = _NON_SLUG.sub("-", s).strip("-")
    return s or "scene"


def web_path(images_url: str, *parts: str) -> str:
    """Percent-encode each path segment under the public images prefix."""
    encoded = [quote(p, safe="") for p in parts]
    return "/".join([images_url, *encoded] if images_url else encoded)


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------

PROJECTION = "equirectangular"


@dataclass(frozen=True)
class Scene:
    id: str
    image_path: str
    hfov: int
    projection: str = PROJECTION
    pitch: float = 0
    yaw: float = 0

    def to_dict(self) -> dict:
        """Pannellum scene record."""
        return {
            "type": self.projection,
            "panorama": self.image_path,
            "hfov": self.hfov,
            "pitch": self.pitch,
            "yaw": self.yaw,
        }


class SceneBuilder:
    """Accumulates scenes for one resolution pass.

    ``_counts`` tracks how often each slug candidate has been seen; the
    n-th use of a candidate becomes ``<candidate>-<n>``. If that id was
    already claimed literally by an earlier file the count keeps rising
    until a free id is found.
    """

    def __init__(self, hfov: float):
        self.hfov = clamp_fov(hfov)
        self.scenes: dict[str, Scene] = {}
        self.order: list[str] = []
        self._counts: dict[str, int] = {}

    def add(self, image_path: str, id_base: str) -> str:
        candidate = slugify(id_base)
        if candidate in self._counts:
            self._counts[candidate] += 1
            scene_id = f"{candidate}-{self._counts[candidate]}"
        else:
            self._counts[candidate] = 1
            scene_id = candidate
        while scene_id in self.scenes:
            self._counts[candidate] += 1
            scene_id = f"{candidate}-{self._counts[candidate]}"

        self.scenes[scene_id] = Scene(id=scene_id, image_path=image_path, hfov=self.hfov)
        self.order.append(scene_id)
        return scene_id


def build_scenes(
    filenames: Iterable[str],
    image_path: Callable[[str], str],
    id_base: Callable[[str], str],
    hfov: float,
    builder: Optional[SceneBuilder] = None,
) -> tuple[dict[str, Scene], list[str]]:
    """Add one scene per filename, in order.

    Returns ``(scenes, ids)`` where *ids* are the ids assigned to
    *filenames*, position for position. Pass *builder* to continue an
    existing pass (shared disambiguation counters).
    """
    builder = builder or SceneBuilder(hfov)
    ids = [builder.add(image_path(name), id_base(name)) for name in filenames]
    return builder.scenes, ids


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class Mode(str, Enum):
    ROOT = "root"
    SUBFOLDER = "subfolder"


@dataclass(frozen=True)
class GalleryRequest:
    directory: str = ""
    scene_id: str = ""
    image: str = ""
    via_navigation: bool = False


@dataclass(frozen=True)
class GalleryState:
    mode: Mode
    current_folder: str = ""
    folders: list[str] = field(default_factory=list)
    folder_previews: dict[str, Optional[str]] = field(default_factory=dict)
    root_images: list[str] = field(default_factory=list)
    folder_images: list[str] = field(default_factory=list)
    scenes: dict[str, Scene] = field(default_factory=dict)
    file_to_scene_id: dict[str, str] = field(default_factory=dict)
    welcome_file: Optional[str] = None
    active_scene_id: Optional[str] = None
    has_content: bool = False
    via_navigation: bool = False

    @property
    def in_subfolder(self) -> bool:
        return self.mode is Mode.SUBFOLDER

    @property
    def show_up_link(self) -> bool:
        """Only folders reached from a gallery tile get an "up" tile."""
        return self.in_subfolder and self.via_navigation

    def thumbnails(self) -> list[dict]:
        """Clickable image thumbnails (never the welcome image)."""
        return [
            {
                "filename": filename,
                "scene_id": scene_id,
                "label": clean_label(filename),
                "src": self.scenes[scene_id].image_path,
                "active": scene_id == self.active_scene_id,
            }
            for filename, scene_id in self.file_to_scene_id.items()
        ]

    def to_dict(self) -> dict:
        """Serialise for JSON responses."""
        return {
            "mode": self.mode.value,
            "current_folder": self.current_folder,
            "folders": list(self.folders),
            "folder_previews": dict(self.folder_previews),
            "root_images": list(self.root_images),
            "folder_images": list(self.folder_images),
            "scenes": {sid: s.to_dict() for sid, s in self.scenes.items()},
            "file_to_scene_id": dict(self.file_to_scene_id),
            "welcome_file": self.welcome_file,
            "active_scene_id": self.active_scene_id,
            "has_content": self.has_content,
            "via_navigation": self.via_navigation,
        }


def match_directory(requested: str, subdirs: Iterable[str]) -> Optional[str]:
    """On-disk folder name matching *requested* case-insensitively."""
    if not requested:
        return None
    return find_case_insensitive(requested, subdirs)


def folder_previews(config: GalleryConfig, folders: Iterable[str]) -> dict[str, Optional[str]]:
    """First image of each folder as its tile preview (None when empty)."""
    previews: dict[str, Optional[str]] = {}
    for folder in folders:
        images = list_images(config.root / folder, config.allowed_extensions)
        previews[folder] = web_path(config.images_url, folder, images[0]) if images else None
    return previews


def _resolve_root(request: GalleryRequest, config: GalleryConfig, subdirs: list[str]) -> GalleryState:
    root_images = list_images(config.root, config.allowed_extensions)
    builder = SceneBuilder(config.default_fov)

    first_scene_id: Optional[str] = None
    welcome = find_case_insensitive(config.welcome_file, root_images) if config.welcome_file else None
    if welcome is not None:
        first_scene_id = builder.add(web_path(config.images_url, welcome), welcome)

    others = [
        img for img in root_images if welcome is None or img.lower() != welcome.lower()
    ]
    _, ids = build_scenes(
        others,
        image_path=lambda name: web_path(config.images_url, name),
        id_base=lambda name: name,
        hfov=config.default_fov,
        builder=builder,
    )
    file_to_scene_id = dict(zip(others, ids))

    if first_scene_id is None and builder.order:
        first_scene_id = builder.order[0]
    if request.image and request.image in file_to_scene_id:
        first_scene_id = file_to_scene_id[request.image]
    if request.scene_id and request.scene_id in builder.scenes:
        first_scene_id = request.scene_id

    return GalleryState(
        mode=Mode.ROOT,
        folders=subdirs,
        folder_previews=folder_previews(config, subdirs),
        root_images=root_images,
        scenes=builder.scenes,
        file_to_scene_id=file_to_scene_id,
        welcome_file=welcome,
        active_scene_id=first_scene_id,
        has_content=bool(builder.scenes) and first_scene_id is not None,
        via_navigation=request.via_navigation,
    )


def _resolve_subfolder(request: GalleryRequest, config: GalleryConfig, folder: str) -> GalleryState:
    folder_images = list_images(config.root / folder, config.allowed_extensions)
    empty_folder = not folder_images

    scenes, ids = build_scenes(
        folder_images,
        image_path=lambda name: web_path(config.images_url, folder, name),
        id_base=lambda name: f"{folder}-{name}",
        hfov=config.default_fov,
    )
    file_to_scene_id = dict(zip(folder_images, ids))

    first_scene_id: Optional[str] = None
    if request.image and request.image in file_to_scene_id:
        first_scene_id = file_to_scene_id[request.image]
    elif request.scene_id and request.scene_id in scenes:
        first_scene_id = request.scene_id
    elif ids:
        first_scene_id = ids[0]

    return GalleryState(
        mode=Mode.SUBFOLDER,
        current_folder=folder,
        folder_images=folder_images,
        scenes=scenes,
        file_to_scene_id=file_to_scene_id,
        active_scene_id=first_scene_id,
        has_content=not empty_folder and bool(scenes) and first_scene_id is not None,
        via_navigation=request.via_navigation,
    )


def resolve_gallery(request: GalleryRequest, config: GalleryConfig) -> GalleryState:
    """Resolve one request against the live filesystem.

    Never raises for request data: unknown folders, scene ids and image
    names are ignored, and a missing gallery root resolves to an empty
    state (``has_content`` False).
    """
    subdirs = list_subdirectories(config.root)
    folder = match_directory(request.directory, subdirs)

    if folder is not None:
        state = _resolve_subfolder(request, config, folder)
    else:
        if request.directory:
            print(f"[gallery] Unknown folder {request.directory!r}, showing root", file=sys.stderr)
        state = _resolve_root(request, config, subdirs)

    if request.scene_id and request.scene_id not in state.scenes:
        print(f"[gallery] Ignoring unknown scene {request.scene_id!r}", file=sys.stderr)
    return state


# ---------------------------------------------------------------------------
# Viewer configuration / deep links
# ---------------------------------------------------------------------------

SCENE_FADE_MS = 800
SCENE_PARAM = "scene"


def viewer_config(state: GalleryState, config: GalleryConfig, author: Optional[str] = None) -> dict:
    """Pannellum configuration for *state*; ``{}`` when there is nothing to show."""
    if not state.has_content:
        return {}
    return {
        "default": {
            "firstScene": state.active_scene_id,
            "autoLoad": True,
            "sceneFadeDuration": SCENE_FADE_MS,
            "author": config.author if author is None else author,
            "autoRotate": config.auto_rotate,
            "minHfov": MIN_FOV,
            "maxHfov": MAX_FOV,
            "compass": False,
        },
        "scenes": {sid: scene.to_dict() for sid, scene in state.scenes.items()},
    }


def folder_url(folder: str) -> str:
    """Link for a folder tile; ``nav=1`` marks in-gallery navigation."""
    return f"?dir={quote(folder, safe='')}&nav=1"


def root_url() -> str:
    return "?nav=1"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: Optional[list[str]] = None):
    defaults = GalleryConfig()
    p = argparse.ArgumentParser(
        description="Resolve a panorama folder into a Pannellum configuration",
    )
    p.add_argument("--root", default=None, help=f"Gallery root (default: {defaults.root})")
    p.add_argument("--dir", default="", help="Subfolder to open (case-insensitive)")
    p.add_argument("--scene", default="", help="Initial scene id")
    p.add_argument("--image", default="", help="Initial image filename")
    p.add_argument("--nav", action="store_true", help="Mark as in-gallery navigation")
    p.add_argument("--author", default=None, help="Author shown by the viewer")
    p.add_argument("--fov", type=float, default=None, help="Default field of view (50-120)")
    p.add_argument("--spin", type=float, default=None, help="Auto-rotate speed")
    p.add_argument("--welcome", default=None, help="Welcome image filename")
    p.add_argument("--state", action="store_true", help="Print the full resolved state")
    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None):
    args = parse_args(argv)

    try:
        config = load_config().with_overrides(
            root=args.root,
            default_fov=args.fov,
            auto_rotate=args.spin,
            welcome_file=args.welcome,
        )
    except ValueError as e:
        sys.exit(str(e))

    if not config.root.is_dir():
        print(f"[gallery] Gallery root not found: {config.root}", file=sys.stderr)

    request = GalleryRequest(
        directory=args.dir,
        scene_id=args.scene,
        image=args.image,
        via_navigation=args.nav,
    )
    state = resolve_gallery(request, config)

    if args.state:
        out = {**state.to_dict(), "config": viewer_config(state, config, args.author)}
    else:
        out = viewer_config(state, config, args.author)
    print(json.dumps(out, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
