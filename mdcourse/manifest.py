"""The fixed lesson catalog and path-based lesson metadata."""

from __future__ import annotations

from typing import NamedTuple

from .utils import leading_order, title_from_slug


class ManifestEntry(NamedTuple):
    path: str
    name: str
    week: str
    order: int


class LessonInfo(NamedTuple):
    name: str
    week: str
    order: int
    # False when no week marker matched and the first week was assumed.
    week_matched: bool = True


LESSON_MANIFEST: tuple[ManifestEntry, ...] = (
    # Week 1: HTML & CSS Basics
    ManifestEntry("README.md", "Course Overview", "week-1", 0),
    ManifestEntry("week-1-html-css-basics/01-html-fundamentals.md", "HTML Fundamentals", "week-1", 1),
    ManifestEntry("week-1-html-css-basics/02-css-basics.md", "CSS Basics", "week-1", 2),
    ManifestEntry("week-1-html-css-basics/03-week-1-project.md", "Week 1 Project", "week-1", 3),
    # Week 2: CSS Layout & Responsive
    ManifestEntry("week-2-css-layout-responsive/01-flexbox-layout.md", "Flexbox Layout", "week-2", 1),
    ManifestEntry("week-2-css-layout-responsive/02-css-grid-layout.md", "CSS Grid Layout", "week-2", 2),
    ManifestEntry(
        "week-2-css-layout-responsive/03-responsive-design-media-queries.md",
        "Responsive Design",
        "week-2",
        3,
    ),
    ManifestEntry("week-2-css-layout-responsive/04-week-2-project.md", "Week 2 Project", "week-2", 4),
    # Week 3: React Basics
    ManifestEntry("week-3-react-basics/01-react-introduction.md", "React Introduction", "week-3", 1),
    ManifestEntry("week-3-react-basics/02-react-components.md", "React Components", "week-3", 2),
    ManifestEntry("week-3-react-basics/03-react-state.md", "React State", "week-3", 3),
    ManifestEntry("week-3-react-basics/04-react-todo-app.md", "React Todo App", "week-3", 4),
    # Week 4: React Advanced
    ManifestEntry("week-4-react-advanced/01-react-hooks-basics.md", "React Hooks Basics", "week-4", 1),
    ManifestEntry("week-4-react-advanced/02-react-advanced-hooks.md", "Advanced React Hooks", "week-4", 2),
    ManifestEntry("week-4-react-advanced/03-react-patterns.md", "React Patterns", "week-4", 3),
    ManifestEntry("week-4-react-advanced/04-react-portfolio.md", "React Portfolio", "week-4", 4),
)

# Week keys in manifest order.
WEEKS: tuple[str, ...] = tuple(dict.fromkeys(e.week for e in LESSON_MANIFEST))

_BY_PATH = {e.path: e for e in LESSON_MANIFEST}


def manifest_entry(path: str) -> ManifestEntry | None:
    return _BY_PATH.get(path)


def week_from_path(path: str) -> str | None:
    for week in WEEKS:
        if week in path:
            return week
    return None


def derive_lesson_info(path: str) -> LessonInfo:
    """Metadata for a lesson that isn't in the catalog yet.

    Known paths take their manifest values. Anything else is guessed from the
    path: title-cased file name, the first week marker found in the path and
    the file's leading number. Paths with no week marker land in the first
    week with ``week_matched=False``.
    """
    entry = manifest_entry(path)
    if entry is not None:
        return LessonInfo(entry.name, entry.week, entry.order)

    week = week_from_path(path)
    order = leading_order(path)
    return LessonInfo(
        name=title_from_slug(path),
        week=week or WEEKS[0],
        order=order if order is not None else 0,
        week_matched=week is not None,
    )
