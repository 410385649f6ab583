"""Embedded SQLite backend over a single shared handle.

A file database tolerates one writer at a time, so this backend keeps one
connection (SQLAlchemy ``StaticPool``) and serializes every operation
through one lock instead of borrowing from a pool.

Tags:
    holdfast, storage, backend, sqlite, sqlalchemy

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.pool import StaticPool

from holdfast.backends.sql import SQLBackend, validate_table_name
from holdfast.core.errors import ConfigError, StorageError


class SQLiteSettings(BaseModel):
    """Where the SQLite database lives.

    ``url`` (any ``sqlite://`` URL) takes precedence over ``file_name``.
    """

    model_config = ConfigDict(frozen=True)

    file_name: str | None = Field(default="holdfast.db")
    table_name: str = Field(default="holdfast")
    url: str | None = Field(default=None)

    def resolved_url(self) -> str:
        if self.url:
            return self.url
        if self.file_name:
            return f"sqlite:///{Path(self.file_name).as_posix()}"
        raise ConfigError("SQLiteSettings needs a file_name or a url").with_context(backend="SQLiteBackend")


class SQLiteBackend(SQLBackend):
    """``SQLBackend`` bound to one SQLite connection guarded by a lock."""

    def __init__(self, settings: SQLiteSettings | None = None, *, name: str | None = None, **overrides: Any) -> None:
        settings = settings or SQLiteSettings(**overrides)
        validate_table_name(settings.table_name)

        from holdfast.core.settings import create_engine

        url = settings.resolved_url()
        if not url.startswith("sqlite"):
            raise ConfigError(f"SQLiteBackend needs a sqlite:// url, got {url!r}").with_context(backend="SQLiteBackend")

        super().__init__(
            create_engine(url, poolclass=StaticPool),
            table_name=settings.table_name,
            name=name,
            dispose_engine=True,
        )
        self.settings = settings
        self._lock = threading.RLock()

    def prepare(self) -> None:
        if self.settings.file_name and not self.settings.url:
            folder = Path(self.settings.file_name).parent
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Could not create directories towards {folder}", cause=e).with_context(
                    backend=self.name, path=str(folder)
                ) from e
        super().prepare()


__all__ = ["SQLiteSettings", "SQLiteBackend"]
