from __future__ import annotations

from sqlmodel import SQLModel, create_engine

from .config import get_settings


def make_engine(database_url: str | None = None):
    url = database_url or get_settings().database_url
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine()


def init_db(bind=None) -> None:
    # Importing models registers the lesson table on SQLModel.metadata.
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
