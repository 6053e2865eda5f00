"""
Panorama Gallery — Web UI (FastAPI + Jinja2 + Pannellum).

Run:
    python server.py
    # or: uvicorn server:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from gallery_config import GalleryConfig, load_config
from panorama_gallery import (
    GalleryRequest,
    GalleryState,
    SCENE_PARAM,
    clean_label,
    folder_url,
    list_images,
    list_subdirectories,
    resolve_gallery,
    root_url,
    viewer_config,
)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

config: GalleryConfig = load_config()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Report the gallery root on startup."""
    if config.root.is_dir():
        print(f"[server] Serving panoramas from {config.root.resolve()}")
    else:
        print(f"[server] Gallery root {config.root} not found, pages will be empty")
    yield


app = FastAPI(title="Panorama Gallery", lifespan=lifespan)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

templates.env.filters["label"] = clean_label
templates.env.filters["folder_url"] = folder_url

# Inline tiles for folders without images and for the "up" link
_svg_data = "data:image/svg+xml;charset=utf-8,{}".format
FOLDER_PLACEHOLDER = _svg_data(
    quote(
        "<svg xmlns='http://www.w3.org/2000/svg' width='320' height='180'>"
        "<rect width='320' height='180' fill='#0b0b0c'/>"
        "<path d='M30 65h90l10 12h160a10 10 0 0 1 10 10v60a10 10 0 0 1-10 10H30"
        "a10 10 0 0 1-10-10V75a10 10 0 0 1 10-10z' fill='#2b7'/></svg>",
        safe="",
    )
)
UP_ARROW = _svg_data(
    quote(
        "<svg xmlns='http://www.w3.org/2000/svg' width='320' height='180'>"
        "<rect width='320' height='180' fill='#0b0b0c'/>"
        "<polygon points='160,40 80,120 120,120 120,160 200,160 200,120 240,120' "
        "fill='#eee'/></svg>",
        safe="",
    )
)


def _parse_nav(value: str) -> bool:
    """``nav=1`` marks a click from inside the gallery (not a deep link)."""
    return value.strip() == "1"


async def _resolve(directory: str, scene: str, image: str, nav: str) -> GalleryState:
    request = GalleryRequest(
        directory=directory.strip(),
        scene_id=scene.strip(),
        image=image,
        via_navigation=_parse_nav(nav),
    )
    # filesystem scan is blocking
    return await asyncio.to_thread(resolve_gallery, request, config)


# ---------------------------------------------------------------------------
# Routes — Pages
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    directory: str = Query("", alias="dir"),
    scene: str = "",
    image: str = "",
    nav: str = "",
    author: Optional[str] = None,
):
    state = await _resolve(directory, scene, image, nav)
    title = config.site_title
    if state.in_subfolder:
        title = f"{title} — {clean_label(state.current_folder)}"

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "title": title,
            "site": config,
            "state": state,
            "thumbnails": state.thumbnails(),
            "viewer": viewer_config(state, config, author),
            "root_url": root_url(),
            "scene_param": SCENE_PARAM,
            "folder_placeholder": FOLDER_PLACEHOLDER,
            "up_arrow": UP_ARROW,
        },
    )


# ---------------------------------------------------------------------------
# Routes — API
# ---------------------------------------------------------------------------


@app.get("/api/gallery")
async def gallery_state(
    directory: str = Query("", alias="dir"),
    scene: str = "",
    image: str = "",
    nav: str = "",
    author: Optional[str] = None,
):
    """Resolved gallery state plus the Pannellum configuration."""
    state = await _resolve(directory, scene, image, nav)
    body = state.to_dict()
    body["thumbnails"] = state.thumbnails()
    body["config"] = viewer_config(state, config, author)
    return JSONResponse(body)


# ---------------------------------------------------------------------------
# Image serving
# ---------------------------------------------------------------------------


def _gallery_file(folder: Optional[str], filename: str) -> Optional[Path]:
    """Path of a listed gallery image, or None.

    Only names the scanner itself returns are served, which rules out
    hidden files, other extensions and traversal outside the root.
    """
    directory = config.root
    if folder is not None:
        if folder not in list_subdirectories(config.root):
            return None
        directory = directory / folder
    if filename not in list_images(directory, config.allowed_extensions):
        return None
    return directory / filename


def _split_image_path(image_path: str) -> Optional[tuple[Optional[str], str]]:
    """``<images_url>/[folder/]file`` -> ``(folder, file)``; None if off-prefix."""
    prefix = config.images_url
    if prefix:
        if not image_path.startswith(prefix + "/"):
            return None
        image_path = image_path[len(prefix) + 1 :]
    parts = image_path.split("/")
    if len(parts) == 1:
        return None, parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    return None


# registered last: the prefix comes from config, so match any remaining path
@app.get("/{image_path:path}")
async def serve_image(image_path: str):
    target = _split_image_path(image_path)
    path = _gallery_file(*target) if target else None
    if path is None:
        return JSONResponse({"error": "File not found"}, 404)
    return FileResponse(path)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run("server:app", host="127.0.0.1", port=8000, reload=True)
