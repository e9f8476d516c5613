from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PField
from sqlmodel import SQLModel, Field, UniqueConstraint


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_lesson_id() -> str:
    return uuid4().hex


class Lesson(SQLModel, table=True):
    id: str = Field(default_factory=new_lesson_id, primary_key=True)

    # Path relative to the course root, e.g. "week-1-html-css-basics/01-html-fundamentals.md"
    path: str = Field(index=True, nullable=False)
    name: str = Field(nullable=False)

    week: str = Field(index=True, nullable=False)
    order: int = Field(default=0, nullable=False)

    is_completed: bool = Field(default=False, nullable=False)
    # Set iff is_completed.
    completed_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    __table_args__ = (UniqueConstraint("path"),)

    def mark(self, completed: bool) -> None:
        self.is_completed = completed
        self.completed_at = utcnow() if completed else None
        self.updated_at = utcnow()


class LessonOut(BaseModel):
    """Public shape of a lesson record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    path: str
    name: str
    week: str
    order: int
    is_completed: bool = PField(serialization_alias="isCompleted")
    completed_at: Optional[datetime] = PField(default=None, serialization_alias="completedAt")


class WeekProgress(BaseModel):
    week: str
    total_lessons: int = PField(serialization_alias="totalLessons")
    completed_lessons: int = PField(serialization_alias="completedLessons")
    progress: float = 0.0


class FileNode(BaseModel):
    name: str
    path: str
    type: Literal["file", "folder"]
    children: Optional[List[FileNode]] = None


FileNode.model_rebuild()
