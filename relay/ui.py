"""Static UI and unmatched-route fallback.

The UI is a set of opaque files under ``relay/static/``; ``/`` serves
``index.html``. This router is registered LAST: its catch-all route answers
every path no other route claimed, serving a static file for GET/HEAD when
one exists and a 404 ``not_found`` otherwise (any method).
"""

from __future__ import annotations

import pathlib

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse

from relay.errors import RouteNotFoundError

STATIC_DIR = pathlib.Path(__file__).parent / "static"

_FALLBACK_METHODS: list[str] = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

router = APIRouter(tags=["ui"])


def resolve_static_file(path: str) -> pathlib.Path | None:
    """Map a request path onto a file inside STATIC_DIR.

    Returns None for directories, missing files and anything that would
    escape STATIC_DIR (``..`` segments, absolute paths, symlinks out).
    """
    root = STATIC_DIR.resolve()
    candidate = (root / path.lstrip("/")).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        return None
    if not candidate.is_file():
        return None
    return candidate


@router.get("/", include_in_schema=False)
async def index() -> FileResponse:
    return FileResponse(str(STATIC_DIR / "index.html"), media_type="text/html")


@router.api_route("/{path:path}", methods=_FALLBACK_METHODS, include_in_schema=False)
async def fallback(request: Request, path: str) -> FileResponse:
    if request.method in ("GET", "HEAD"):
        static_file = resolve_static_file(path)
        if static_file is not None:
            return FileResponse(str(static_file))
    raise RouteNotFoundError()
