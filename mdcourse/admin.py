from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends

from .config import get_settings
from .models import FileNode


def build_admin_router(
    *,
    rescan: Callable[[], list[FileNode]],
    get_progress_dep: Callable[..., Any],
) -> APIRouter:
    """Admin routes.

    - Re-scan the lesson tree (new or renamed markdown files)
    - Reset all completion state

    Kept as a router factory so the main app can inject dependencies cleanly.
    """

    r = APIRouter(prefix="/api/admin")

    @r.post("/rescan")
    def admin_rescan():
        tree = rescan()
        return {"root": str(get_settings().course_root), "items": len(tree)}

    @r.post("/reset")
    def admin_reset(progress=Depends(get_progress_dep)):
        changed = progress.reset()
        return {"message": "Progress reset", "reset": changed}

    return r
