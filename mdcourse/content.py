from __future__ import annotations

from pathlib import Path
from typing import Optional

from .models import FileNode
from .scan import MARKDOWN_EXT, iter_lesson_paths


class LessonContentError(Exception):
    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class InvalidLessonPath(LessonContentError):
    """The request can't name a servable lesson (bad extension, outside the root, a directory)."""


class LessonNotFound(LessonContentError):
    pass


class LessonUnreadable(LessonContentError):
    """The file exists but reading it failed (permissions, I/O)."""


def resolve_lesson_path(root: Path, rel_path: Optional[str]) -> Path:
    """Map a lesson path onto a markdown file inside ``root``."""
    if not rel_path:
        raise InvalidLessonPath("Path parameter is required")
    if not rel_path.endswith(MARKDOWN_EXT):
        raise InvalidLessonPath("Only markdown files (.md) are allowed", rel_path)

    root = root.resolve()
    try:
        target = (root / rel_path).resolve()
    except (OSError, ValueError) as e:
        raise InvalidLessonPath(f"Unusable path: {e}", rel_path) from e
    if target != root and root not in target.parents:
        raise InvalidLessonPath("Path is outside the lesson directory", rel_path)

    if not target.exists():
        raise LessonNotFound("File not found", rel_path)
    if not target.is_file():
        raise InvalidLessonPath("Path is a directory, not a file", rel_path)
    return target


def read_lesson_markdown(root: Path, rel_path: Optional[str]) -> str:
    """UTF-8 text of a lesson; undecodable bytes come back as U+FFFD."""
    target = resolve_lesson_path(root, rel_path)
    try:
        return target.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise LessonUnreadable(f"Could not read lesson file: {e.strerror or e}", rel_path) from e


def neighbours(tree: list[FileNode], path: str) -> tuple[Optional[str], Optional[str]]:
    """Previous and next lesson paths around ``path`` in tree order."""
    paths = list(iter_lesson_paths(tree))
    try:
        i = paths.index(path)
    except ValueError:
        return None, None
    prev = paths[i - 1] if i > 0 else None
    nxt = paths[i + 1] if i + 1 < len(paths) else None
    return prev, nxt
