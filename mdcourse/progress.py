from __future__ import annotations

import json
import logging
import math
import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .config import Settings
from .manifest import LESSON_MANIFEST, WEEKS, derive_lesson_info
from .models import Lesson, WeekProgress


log = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """The progress backend couldn't be read or written."""


class LessonRepository(ABC):
    """Storage primitives the progress service is written against."""

    @abstractmethod
    def list_lessons(self) -> list[Lesson]: ...

    @abstractmethod
    def get(self, path: str) -> Optional[Lesson]: ...

    @abstractmethod
    def add_if_absent(self, lesson: Lesson) -> Lesson:
        """Store ``lesson`` unless its path is taken; return the stored record."""

    @abstractmethod
    def save(self, lesson: Lesson) -> None: ...


class SqlLessonRepository(LessonRepository):
    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _errors(self):
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(str(e)) from e

    def list_lessons(self) -> list[Lesson]:
        with self._errors():
            return list(self.session.exec(select(Lesson)).all())

    def get(self, path: str) -> Optional[Lesson]:
        with self._errors():
            return self.session.exec(select(Lesson).where(Lesson.path == path)).first()

    def add_if_absent(self, lesson: Lesson) -> Lesson:
        existing = self.get(lesson.path)
        if existing:
            return existing

        with self._errors():
            self.session.add(lesson)
            try:
                self.session.commit()
            except IntegrityError:
                # Lost a race on the unique path; keep the other writer's row.
                self.session.rollback()
                winner = self.session.exec(select(Lesson).where(Lesson.path == lesson.path)).first()
                if winner is None:
                    raise
                return winner
            self.session.refresh(lesson)
            return lesson

    def save(self, lesson: Lesson) -> None:
        with self._errors():
            self.session.add(lesson)
            self.session.commit()
            self.session.refresh(lesson)


_FILE_LOCKS: dict[Path, threading.RLock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(path, threading.RLock())


class LocalLessonRepository(LessonRepository):
    """Lessons kept in a JSON document under the ``"lessons"`` key.

    Same layout a browser keeps in localStorage. Writes replace the whole
    document, so concurrent processes are last-write-wins.
    """

    LESSONS_KEY = "lessons"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path.resolve())

    def _read(self) -> list[dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"reading {self.path}: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageError(f"corrupt progress file {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get(self.LESSONS_KEY, []), list):
            raise StorageError(f"unexpected layout in {self.path}")
        return data.get(self.LESSONS_KEY, [])

    def _write(self, rows: list[dict[str, Any]]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps({self.LESSONS_KEY: rows}, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"writing {self.path}: {e}") from e

    @staticmethod
    def _load(row: dict[str, Any]) -> Lesson:
        try:
            return Lesson.model_validate(row)
        except ValidationError as e:
            raise StorageError(f"bad lesson record {row.get('path')!r}: {e}") from e

    @staticmethod
    def _dump(lesson: Lesson) -> dict[str, Any]:
        return lesson.model_dump(mode="json")

    def list_lessons(self) -> list[Lesson]:
        with self._lock:
            return [self._load(r) for r in self._read()]

    def get(self, path: str) -> Optional[Lesson]:
        with self._lock:
            for row in self._read():
                if row.get("path") == path:
                    return self._load(row)
        return None

    def add_if_absent(self, lesson: Lesson) -> Lesson:
        with self._lock:
            rows = self._read()
            for row in rows:
                if row.get("path") == lesson.path:
                    return self._load(row)
            rows.append(self._dump(lesson))
            self._write(rows)
            return lesson

    def save(self, lesson: Lesson) -> None:
        with self._lock:
            rows = self._read()
            for i, row in enumerate(rows):
                if row.get("path") == lesson.path:
                    rows[i] = self._dump(lesson)
                    break
            else:
                rows.append(self._dump(lesson))
            self._write(rows)


def build_repository(settings: Settings, session: Optional[Session] = None) -> LessonRepository:
    if settings.progress_backend == "local":
        return LocalLessonRepository(settings.progress_file)
    if session is None:
        raise ValueError("the sql progress backend needs a database session")
    return SqlLessonRepository(session)


def round_half_up(value: float) -> float:
    """Two decimal places, ties rounded up (2.125 -> 2.13, not 2.12)."""
    return math.floor(value * 100 + 0.5) / 100


def _lesson_sort_key(lesson: Lesson):
    return (lesson.week, lesson.order, lesson.path)


class ProgressService:
    """Lesson catalog and completion tracking on top of any LessonRepository.

    Storage failures surface as StorageError; see SafeProgressService for the
    variant that degrades to empty results instead.
    """

    def __init__(self, repo: LessonRepository) -> None:
        self.repo = repo

    def initialize(self) -> int:
        """Seed the manifest lessons that aren't stored yet; return how many were added."""
        created = 0
        for entry in LESSON_MANIFEST:
            candidate = Lesson(path=entry.path, name=entry.name, week=entry.week, order=entry.order)
            stored = self.repo.add_if_absent(candidate)
            if stored.id == candidate.id:
                created += 1
        log.info("lesson catalog initialized (%d new of %d)", created, len(LESSON_MANIFEST))
        return created

    def list_lessons(self) -> list[Lesson]:
        lessons = self.repo.list_lessons()
        if not lessons:
            log.info("no lessons stored, seeding the catalog")
            self.initialize()
            lessons = self.repo.list_lessons()
        return sorted(lessons, key=_lesson_sort_key)

    def list_by_week(self, week: str) -> list[Lesson]:
        return [l for l in self.list_lessons() if l.week == week]

    def get_lesson(self, path: str) -> Optional[Lesson]:
        return self.repo.get(path)

    def is_completed(self, path: str) -> bool:
        lesson = self.repo.get(path)
        return bool(lesson and lesson.is_completed)

    def get_or_create(self, path: str) -> Lesson:
        lesson = self.repo.get(path)
        if lesson is not None:
            return lesson

        info = derive_lesson_info(path)
        if not info.week_matched:
            log.warning("no week marker in %s, filing it under %s", path, info.week)
        log.info("adding %s to the lesson catalog", path)
        return self.repo.add_if_absent(
            Lesson(path=path, name=info.name, week=info.week, order=info.order)
        )

    def set_completion(self, path: str, completed: bool) -> Lesson:
        lesson = self.get_or_create(path)
        lesson.mark(completed)
        self.repo.save(lesson)
        return lesson

    def set_completed(self, path: str) -> Lesson:
        return self.set_completion(path, True)

    def set_incomplete(self, path: str) -> Lesson:
        return self.set_completion(path, False)

    def week_progress(self, week: str) -> WeekProgress:
        lessons = self.list_by_week(week)
        total = len(lessons)
        done = sum(1 for l in lessons if l.is_completed)
        pct = (done / total) * 100 if total else 0.0
        return WeekProgress(
            week=week,
            total_lessons=total,
            completed_lessons=done,
            progress=round_half_up(pct),
        )

    def overall_progress(self) -> list[WeekProgress]:
        return [self.week_progress(week) for week in WEEKS]

    def reset(self) -> int:
        """Mark every lesson incomplete; return how many changed."""
        changed = 0
        for lesson in self.repo.list_lessons():
            if lesson.is_completed:
                lesson.mark(False)
                self.repo.save(lesson)
                changed += 1
        return changed


class SafeProgressService:
    """ProgressService that logs storage failures and returns defaults.

    An outage reads as "no progress yet": empty lists, ``False``, zeroed
    week progress and ``None`` where a record was expected.
    """

    def __init__(self, service: ProgressService) -> None:
        self.service = service

    def _guard(self, default: T, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except StorageError:
            log.exception("progress storage failed in %s%r", fn.__name__, args)
            return default

    def initialize(self) -> int:
        return self._guard(0, self.service.initialize)

    def list_lessons(self) -> list[Lesson]:
        return self._guard([], self.service.list_lessons)

    def list_by_week(self, week: str) -> list[Lesson]:
        return self._guard([], self.service.list_by_week, week)

    def get_lesson(self, path: str) -> Optional[Lesson]:
        return self._guard(None, self.service.get_lesson, path)

    def is_completed(self, path: str) -> bool:
        return self._guard(False, self.service.is_completed, path)

    def get_or_create(self, path: str) -> Optional[Lesson]:
        return self._guard(None, self.service.get_or_create, path)

    def set_completion(self, path: str, completed: bool) -> Optional[Lesson]:
        return self._guard(None, self.service.set_completion, path, completed)

    def set_completed(self, path: str) -> Optional[Lesson]:
        return self.set_completion(path, True)

    def set_incomplete(self, path: str) -> Optional[Lesson]:
        return self.set_completion(path, False)

    def week_progress(self, week: str) -> WeekProgress:
        empty = WeekProgress(week=week, total_lessons=0, completed_lessons=0, progress=0.0)
        return self._guard(empty, self.service.week_progress, week)

    def overall_progress(self) -> list[WeekProgress]:
        # Per week, so one failing week doesn't blank the others.
        return [self.week_progress(week) for week in WEEKS]

    def reset(self) -> int:
        return self._guard(0, self.service.reset)
