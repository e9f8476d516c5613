from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


BACKENDS = ("sql", "local")


@dataclass(frozen=True)
class Settings:
    content_dir: Path
    course_dir: str
    database_url: str
    progress_backend: str
    progress_file: Path
    strict_storage: bool
    host: str
    port: int

    @property
    def course_root(self) -> Path:
        """Scan root; also the root markdown reads are confined to."""
        return self.content_dir / self.course_dir


def _path_from_env(name: str, default: str) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw or default).expanduser().resolve()


def get_settings() -> Settings:
    content_dir = _path_from_env("CONTENT_DIR", "./md-files")
    course_dir = os.getenv("COURSE_DIR", "frontend-course").strip()

    database_url = os.getenv("DATABASE_URL", "sqlite:///./course_progress.db").strip()

    backend = os.getenv("PROGRESS_BACKEND", "sql").strip().lower() or "sql"
    if backend not in BACKENDS:
        raise ValueError(f"PROGRESS_BACKEND must be one of {BACKENDS}, got {backend!r}")

    progress_file = _path_from_env("PROGRESS_FILE", "./progress.json")
    strict = os.getenv("STRICT_STORAGE", "0").strip().lower() in {"1", "true", "yes"}

    return Settings(
        content_dir=content_dir,
        course_dir=course_dir,
        database_url=database_url,
        progress_backend=backend,
        progress_file=progress_file,
        strict_storage=strict,
        host=os.getenv("HOST", "127.0.0.1").strip(),
        port=int(os.getenv("PORT", "8000")),
    )
