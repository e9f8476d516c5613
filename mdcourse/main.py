from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Iterator, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from sqlmodel import Session

from . import db
from .admin import build_admin_router
from .config import get_settings
from .content import (
    InvalidLessonPath,
    LessonNotFound,
    LessonUnreadable,
    neighbours,
    read_lesson_markdown,
)
from .models import FileNode, LessonOut
from .progress import (
    LessonRepository,
    ProgressService,
    SafeProgressService,
    StorageError,
    build_repository,
)
from .scan import lesson_tree


app = FastAPI(title="Course Viewer")


log = logging.getLogger(__name__)


@dataclass
class TreeCache:
    root: Optional[Path] = None
    nodes: list[FileNode] = field(default_factory=list)


TREE_CACHE = TreeCache()


def rescan_tree() -> list[FileNode]:
    root = get_settings().course_root
    TREE_CACHE.root = root
    TREE_CACHE.nodes = lesson_tree(root)
    return TREE_CACHE.nodes


def current_tree() -> list[FileNode]:
    if TREE_CACHE.root != get_settings().course_root or not TREE_CACHE.nodes:
        return rescan_tree()
    return TREE_CACHE.nodes


def get_repository() -> Iterator[LessonRepository]:
    settings = get_settings()
    if settings.progress_backend != "sql":
        yield build_repository(settings)
        return
    with Session(db.engine) as session:
        yield build_repository(settings, session)


def get_progress(
    repo: LessonRepository = Depends(get_repository),
) -> Union[ProgressService, SafeProgressService]:
    settings = get_settings()
    service = ProgressService(repo)
    if settings.strict_storage:
        return service
    return SafeProgressService(service)


@app.on_event("startup")
def on_startup() -> None:
    # Seed the lesson catalog and scan the tree at launch.
    # If storage is down we still serve lesson content; progress reads degrade.
    settings = get_settings()
    try:
        if settings.progress_backend == "sql":
            db.init_db()
            with Session(bind=db.engine) as s:
                ProgressService(build_repository(settings, s)).initialize()
        else:
            ProgressService(build_repository(settings)).initialize()
    except Exception:
        log.exception("lesson catalog setup failed (backend=%s)", settings.progress_backend)

    rescan_tree()


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    log.error("progress storage unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"error": "Progress storage unavailable"})


app.include_router(build_admin_router(rescan=rescan_tree, get_progress_dep=get_progress))


@app.get("/api/files", response_model=list[FileNode], response_model_exclude_none=True)
def files():
    return current_tree()


@app.get("/api/markdown", response_class=PlainTextResponse)
def markdown(path: Optional[str] = None):
    """Raw markdown for one lesson; rendering is up to the client."""
    try:
        return PlainTextResponse(read_lesson_markdown(get_settings().course_root, path))
    except InvalidLessonPath as e:
        raise HTTPException(400, e.message)
    except LessonNotFound as e:
        log.info("lesson file missing: %s", e.path)
        raise HTTPException(404, e.message)
    except LessonUnreadable as e:
        log.error("lesson file unreadable: %s (%s)", e.path, e.message)
        raise HTTPException(500, e.message)


@app.get("/api/navigation")
def navigation(path: str):
    prev, nxt = neighbours(current_tree(), path)
    return {"previous": prev, "next": nxt}


@app.get("/api/lessons", response_model=list[LessonOut])
def lessons(
    week: Optional[str] = None,
    q: Optional[str] = None,
    progress=Depends(get_progress),
):
    rows = progress.list_by_week(week) if week else progress.list_lessons()
    if q:
        # Simple substring match on the title.
        needle = q.lower()
        rows = [l for l in rows if needle in l.name.lower()]
    return [LessonOut.model_validate(l) for l in rows]


class CatalogAction(BaseModel):
    action: str


@app.post("/api/lessons")
def lessons_action(payload: CatalogAction, progress=Depends(get_progress)):
    if payload.action != "initialize":
        raise HTTPException(400, "Invalid action")
    created = progress.initialize()
    return {"message": "Lessons initialized successfully", "created": created}


@app.get("/api/lessons/{path:path}")
def lesson_status(path: str, progress=Depends(get_progress)):
    return {"isCompleted": progress.is_completed(path)}


class ToggleIn(BaseModel):
    action: str


@app.put("/api/lessons/{path:path}")
def toggle_lesson(path: str, payload: ToggleIn, progress=Depends(get_progress)):
    if payload.action == "complete":
        lesson = progress.set_completed(path)
        message = "Lesson marked as completed"
    elif payload.action == "incomplete":
        lesson = progress.set_incomplete(path)
        message = "Lesson marked as incomplete"
    else:
        raise HTTPException(400, "Invalid action")

    return {"message": message, "isCompleted": bool(lesson and lesson.is_completed)}


@app.get("/api/progress")
def week_progress(week: Optional[str] = None, progress=Depends(get_progress)):
    if week:
        return progress.week_progress(week).model_dump(by_alias=True)
    return [p.model_dump(by_alias=True) for p in progress.overall_progress()]


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
