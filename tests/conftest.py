from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from mdcourse import db, main
from mdcourse.progress import (
    LocalLessonRepository,
    ProgressService,
    SqlLessonRepository,
)


COURSE_FILES = {
    "README.md": "# Course Overview\n",
    "week-1-html-css-basics/01-html-fundamentals.md": "# HTML Fundamentals\n\nTags and elements.\n",
    "week-1-html-css-basics/02-css-basics.md": "# CSS Basics\n",
    "week-1-html-css-basics/assets/diagram.png": "not really a png",
    "week-2-css-layout-responsive/01-flexbox-layout.md": "# Flexbox\n",
    "week-2-css-layout-responsive/notes.txt": "scratch",
    "drafts/todo.txt": "nothing to see",
    "node_modules/some-pkg/README.md": "# vendored\n",
    "web/page.md": "# front-end project\n",
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """``md-files`` directory holding a small ``frontend-course``."""
    base = tmp_path / "md-files"
    write_tree(base / "frontend-course", COURSE_FILES)
    return base


@pytest.fixture
def course_root(content_dir: Path) -> Path:
    return content_dir / "frontend-course"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db.init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine) -> Iterator[Session]:
    with Session(engine) as s:
        yield s


@pytest.fixture(params=["sql", "local"])
def repo(request, session, tmp_path: Path):
    if request.param == "sql":
        return SqlLessonRepository(session)
    return LocalLessonRepository(tmp_path / "progress.json")


@pytest.fixture
def service(repo) -> ProgressService:
    return ProgressService(repo)


def _make_client(monkeypatch, engine, content_dir: Path, **env: str) -> Iterator[TestClient]:
    monkeypatch.setenv("CONTENT_DIR", str(content_dir))
    monkeypatch.setenv("COURSE_DIR", "frontend-course")
    monkeypatch.delenv("STRICT_STORAGE", raising=False)
    monkeypatch.delenv("PROGRESS_BACKEND", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    # Startup seeding and per-request sessions both open on db.engine.
    monkeypatch.setattr(db, "engine", engine)

    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def client(monkeypatch, engine, content_dir):
    yield from _make_client(monkeypatch, engine, content_dir)


@pytest.fixture
def local_client(monkeypatch, engine, content_dir, tmp_path):
    yield from _make_client(
        monkeypatch,
        engine,
        content_dir,
        PROGRESS_BACKEND="local",
        PROGRESS_FILE=str(tmp_path / "state" / "progress.json"),
    )
