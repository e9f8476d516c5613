from __future__ import annotations

from pathlib import Path

import pytest

from mdcourse.config import get_settings
from mdcourse.manifest import LESSON_MANIFEST, WEEKS
from mdcourse.models import Lesson
from mdcourse.progress import (
    LessonRepository,
    LocalLessonRepository,
    ProgressService,
    SafeProgressService,
    SqlLessonRepository,
    StorageError,
    build_repository,
    round_half_up,
)


HTML = "week-1-html-css-basics/01-html-fundamentals.md"


def snapshot(service: ProgressService) -> dict[str, bool]:
    return {l.path: l.is_completed for l in service.list_lessons()}


def assert_completion_consistent(service: ProgressService) -> None:
    for lesson in service.repo.list_lessons():
        assert (lesson.completed_at is not None) == lesson.is_completed, lesson.path


def test_initialize_is_idempotent(service: ProgressService) -> None:
    assert service.initialize() == len(LESSON_MANIFEST)
    first = snapshot(service)
    ids = {l.path: l.id for l in service.repo.list_lessons()}

    assert service.initialize() == 0
    assert snapshot(service) == first
    assert {l.path: l.id for l in service.repo.list_lessons()} == ids


def test_initialize_keeps_completion_state(service: ProgressService) -> None:
    service.initialize()
    service.set_completed(HTML)
    service.initialize()
    assert service.is_completed(HTML) is True
    assert_completion_consistent(service)


def test_list_lessons_seeds_empty_catalog(service: ProgressService) -> None:
    assert service.repo.list_lessons() == []
    lessons = service.list_lessons()
    assert len(lessons) == len(LESSON_MANIFEST)
    keys = [(l.week, l.order) for l in lessons]
    assert keys == sorted(keys)
    assert lessons[0].path == "README.md"
    assert not any(l.is_completed for l in lessons)


def test_list_by_week(service: ProgressService) -> None:
    week2 = service.list_by_week("week-2")
    assert [l.order for l in week2] == [1, 2, 3, 4]
    assert service.list_by_week("week-9") == []


def test_completion_round_trip(service: ProgressService) -> None:
    service.initialize()

    lesson = service.set_completed(HTML)
    assert lesson.is_completed and lesson.completed_at is not None
    assert service.is_completed(HTML) is True

    lesson = service.set_incomplete(HTML)
    assert lesson.completed_at is None
    assert service.is_completed(HTML) is False
    assert_completion_consistent(service)


def test_unknown_path_reads_as_incomplete(service: ProgressService) -> None:
    assert service.is_completed("week-3-react-basics/09-nope.md") is False
    assert service.get_lesson("week-3-react-basics/09-nope.md") is None


def test_completing_unknown_path_creates_record(service: ProgressService) -> None:
    service.initialize()
    path = "week-3-react-basics/05-react-router.md"
    service.set_completed(path)

    lesson = service.get_lesson(path)
    assert lesson.name == "05 React Router"
    assert lesson.week == "week-3"
    assert lesson.order == 5
    assert lesson.is_completed is True
    assert len(service.list_by_week("week-3")) == 5


def test_marking_unknown_path_incomplete_also_creates_it(service: ProgressService) -> None:
    service.set_incomplete("extras/glossary.md")
    lesson = service.get_lesson("extras/glossary.md")
    assert lesson.week == "week-1"
    assert lesson.is_completed is False and lesson.completed_at is None


def test_week_progress_scenario(service: ProgressService) -> None:
    service.initialize()
    service.set_completed(HTML)
    progress = service.week_progress("week-1")
    assert progress.week == "week-1"
    assert progress.total_lessons == 4
    assert progress.completed_lessons == 1
    assert progress.progress == 25.0


def test_week_progress_rounds_to_two_places(service: ProgressService) -> None:
    service.initialize()
    for i in range(3):
        service.repo.add_if_absent(Lesson(path=f"bonus/{i}.md", name=str(i), week="bonus", order=i))
    service.set_completed("bonus/0.md")
    assert service.week_progress("bonus").progress == 33.33


def test_empty_week_progress_is_zero(service: ProgressService) -> None:
    progress = service.week_progress("week-42")
    assert (progress.total_lessons, progress.completed_lessons, progress.progress) == (0, 0, 0.0)


def test_overall_progress_follows_manifest_weeks(service: ProgressService) -> None:
    service.initialize()
    service.set_completed("week-2-css-layout-responsive/01-flexbox-layout.md")
    service.set_completed("week-2-css-layout-responsive/02-css-grid-layout.md")

    overall = service.overall_progress()
    assert [p.week for p in overall] == list(WEEKS)
    for p in overall:
        assert p == service.week_progress(p.week)
    assert overall[1].progress == 50.0


def test_get_or_create(service: ProgressService) -> None:
    service.initialize()
    existing = service.get_or_create(HTML)
    assert existing.name == "HTML Fundamentals"

    fresh = service.get_or_create("week-4-react-advanced/05-testing.md")
    assert fresh.is_completed is False
    assert service.get_or_create("week-4-react-advanced/05-testing.md").id == fresh.id


def test_reset(service: ProgressService) -> None:
    service.initialize()
    service.set_completed(HTML)
    service.set_completed("README.md")
    assert service.reset() == 2
    assert not any(snapshot(service).values())
    assert_completion_consistent(service)


def test_sql_add_if_absent_converges_on_one_row(session, monkeypatch) -> None:
    repo = SqlLessonRepository(session)
    first = repo.add_if_absent(Lesson(path="race.md", name="a", week="week-1", order=0))

    # Pretend the existence check ran before the other writer committed.
    monkeypatch.setattr(repo, "get", lambda path: None)
    second = repo.add_if_absent(Lesson(path="race.md", name="b", week="week-1", order=0))

    assert second.id == first.id
    assert second.name == "a"
    monkeypatch.undo()
    assert len(repo.list_lessons()) == 1


def test_local_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    ProgressService(LocalLessonRepository(path)).set_completed(HTML)

    again = ProgressService(LocalLessonRepository(path))
    assert again.is_completed(HTML) is True
    assert again.get_lesson(HTML).completed_at is not None


def test_local_store_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        ProgressService(LocalLessonRepository(path)).list_lessons()


class BrokenRepository(LessonRepository):
    def list_lessons(self):
        raise StorageError("down")

    def get(self, path):
        raise StorageError("down")

    def add_if_absent(self, lesson):
        raise StorageError("down")

    def save(self, lesson):
        raise StorageError("down")


def test_safe_service_degrades_to_defaults() -> None:
    safe = SafeProgressService(ProgressService(BrokenRepository()))
    assert safe.list_lessons() == []
    assert safe.list_by_week("week-1") == []
    assert safe.is_completed(HTML) is False
    assert safe.set_completed(HTML) is None
    assert safe.get_or_create(HTML) is None
    assert safe.initialize() == 0
    assert safe.reset() == 0
    progress = safe.week_progress("week-2")
    assert (progress.week, progress.total_lessons, progress.progress) == ("week-2", 0, 0.0)
    assert [p.week for p in safe.overall_progress()] == list(WEEKS)


def test_strict_service_raises() -> None:
    with pytest.raises(StorageError):
        ProgressService(BrokenRepository()).is_completed(HTML)


def test_build_repository_follows_settings(monkeypatch, tmp_path: Path, session) -> None:
    monkeypatch.setenv("PROGRESS_BACKEND", "local")
    monkeypatch.setenv("PROGRESS_FILE", str(tmp_path / "p.json"))
    repo = build_repository(get_settings(), session)
    assert isinstance(repo, LocalLessonRepository)
    assert repo.path == (tmp_path / "p.json").resolve()

    monkeypatch.setenv("PROGRESS_BACKEND", "sql")
    assert isinstance(build_repository(get_settings(), session), SqlLessonRepository)
    with pytest.raises(ValueError):
        build_repository(get_settings())


def test_unknown_backend_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("PROGRESS_BACKEND", "redis")
    with pytest.raises(ValueError):
        get_settings()


def test_progress_ties_round_up(service: ProgressService) -> None:
    for i in range(32):
        service.repo.add_if_absent(Lesson(path=f"big/{i:02d}.md", name=str(i), week="big", order=i))
    service.set_completed("big/00.md")
    assert service.week_progress("big").progress == 3.13


def test_round_half_up() -> None:
    assert round_half_up(3.125) == 3.13
    assert round_half_up(33.3333) == 33.33
    assert round_half_up(100.0) == 100.0
    assert round_half_up(0.0) == 0.0
