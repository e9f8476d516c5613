from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from .models import FileNode
from .utils import strip_markdown_ext


log = logging.getLogger(__name__)

MARKDOWN_EXT = ".md"

# Toolchain and VCS dirs, plus "web" (the front-end project living next to the content).
EXCLUDED_DIRS = frozenset(
    {"node_modules", ".git", "web", "__pycache__", ".venv", "venv", "build", "dist"}
)


def _sort_key(node: FileNode):
    return (node.type != "folder", node.name)


def _join(base: str, name: str) -> str:
    return f"{base}/{name}" if base else name


def walk_tree(directory: Path, base: str = "") -> list[FileNode]:
    """Recursively collect markdown files under ``directory``.

    Raises OSError if any level can't be listed. Folders with no markdown
    descendants are left out.
    """
    nodes: list[FileNode] = []

    for entry in directory.iterdir():
        rel = _join(base, entry.name)
        if entry.is_dir():
            if entry.name in EXCLUDED_DIRS:
                continue
            children = walk_tree(entry, rel)
            if children:
                nodes.append(FileNode(name=entry.name, path=rel, type="folder", children=children))
        elif entry.is_file() and entry.name.endswith(MARKDOWN_EXT):
            nodes.append(FileNode(name=strip_markdown_ext(entry.name), path=rel, type="file"))

    nodes.sort(key=_sort_key)
    return nodes


def scan_tree(directory: Path, base: str = "") -> list[FileNode]:
    """Like walk_tree, but an I/O failure yields an empty tree."""
    try:
        return walk_tree(directory, base)
    except OSError:
        log.exception("scanning lesson tree failed (directory=%s)", directory)
        return []


def iter_lesson_paths(nodes: Iterable[FileNode]) -> Iterator[str]:
    """File paths in display order, depth first."""
    for node in nodes:
        if node.type == "folder":
            yield from iter_lesson_paths(node.children or [])
        else:
            yield node.path


def _outline(folder: str, files: list[str]) -> FileNode:
    return FileNode(
        name=folder,
        path=folder,
        type="folder",
        children=[
            FileNode(name=strip_markdown_ext(f), path=f"{folder}/{f}", type="file") for f in files
        ],
    )


def fallback_tree() -> list[FileNode]:
    """Static course outline served when the content directory can't be scanned.

    Shaped exactly like a scan of the stock course would be.
    """
    return [
        _outline(
            "week-1-html-css-basics",
            ["01-html-fundamentals.md", "02-css-basics.md", "03-week-1-project.md"],
        ),
        _outline(
            "week-2-css-layout-responsive",
            [
                "01-flexbox-layout.md",
                "02-css-grid-layout.md",
                "03-responsive-design-media-queries.md",
                "04-week-2-project.md",
            ],
        ),
        _outline(
            "week-3-react-basics",
            [
                "01-react-introduction.md",
                "02-react-components.md",
                "03-react-state.md",
                "04-react-todo-app.md",
            ],
        ),
        _outline(
            "week-4-react-advanced",
            [
                "01-react-hooks-basics.md",
                "02-react-advanced-hooks.md",
                "03-react-patterns.md",
                "04-react-portfolio.md",
            ],
        ),
        FileNode(name="README", path="README.md", type="file"),
    ]


def lesson_tree(root: Path) -> list[FileNode]:
    tree = scan_tree(root)
    if not tree:
        log.warning("no lessons found under %s, serving the static outline", root)
        return fallback_tree()
    return tree
