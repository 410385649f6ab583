"""
Holdfast configuration and factories.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    One ``HoldfastSettings`` object picks the backend and tunes it; the
    factories below turn it into live objects.

    - **Pydantic validation:** Type-checked at startup, not on first save
    - **Environment-driven:** ``HOLDFAST_*`` variables and ``.env`` files
    - **Lazy imports:** SQLAlchemy is only imported for relational backends

Features:
    - **HoldfastSettings:** backend kind, paths, pool tuning, decode mode, logging
    - **create_engine():** SQLAlchemy engine with SQLite thread tweaks and pool tuning
    - **create_backend():** concrete ``StorageBackend`` from settings
    - **create_cache():** ready-to-use ``HolderCache`` with a matching trace
    - **get_settings():** cached settings instance (``clear_settings_cache`` for tests)

Examples:
    >>> from holdfast.core.settings import HoldfastSettings, create_cache
    >>> settings = HoldfastSettings(backend="buffered", data_dir="data/holders", copies=3)
    >>> cache = create_cache(settings)
    >>> cache.prepare()

Tags:
    settings, configuration, pydantic, environment, factory-pattern,
    lazy-imports, sqlalchemy, holdfast

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from holdfast.core.errors import ConfigError

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from holdfast.backends.base import StorageBackend
    from holdfast.core.cache import HolderCache

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class StorageKind(str, Enum):
    """Supported storage backends."""

    FOLDER = "folder"
    BUFFERED = "buffered"
    SQL = "sql"
    SQLITE = "sqlite"
    MEMORY = "memory"


class HoldfastSettings(BaseSettings):
    """Holdfast centralized configuration.

    All fields can be set via ``HOLDFAST_*`` environment variables (e.g.
    ``HOLDFAST_BACKEND=sqlite``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOLDFAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    backend: StorageKind = Field(default=StorageKind.FOLDER)

    # ── Files ────────────────────────────────────────────────────
    data_dir: Path = Field(default=Path("data"), description="Folder of the file backends")
    copies: int = Field(default=2, ge=1, description="Copies per holder (buffered backend)")

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///holdfast.db")
    table_name: str = Field(default="holdfast")
    pool_size: int | None = Field(default=None)
    max_overflow: int | None = Field(default=None)
    pool_timeout: int | None = Field(default=None)
    database_echo: bool = Field(default=False)

    # ── Codec ────────────────────────────────────────────────────
    lazy_decode: bool = Field(default=False, description="Decode elements on first access")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @property
    def is_relational(self) -> bool:
        return self.backend in (StorageKind.SQL, StorageKind.SQLITE)


# ── Factories ────────────────────────────────────────────────────────────


def create_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite gets ``check_same_thread=False`` (and WAL for file databases);
    pool parameters apply to every other dialect.
    """
    from sqlalchemy import create_engine as _sa_create_engine

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        from sqlalchemy import event

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        if ":memory:" not in url and url.rstrip("/") not in ("sqlite:", "sqlite+pysqlite:"):

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def create_backend(settings: HoldfastSettings) -> StorageBackend:
    """Create the storage backend selected by *settings.backend*."""
    match settings.backend:
        case StorageKind.FOLDER:
            from holdfast.backends.folder import FolderBackend

            return FolderBackend(settings.data_dir)
        case StorageKind.BUFFERED:
            from holdfast.backends.buffered import BufferedFolderBackend

            return BufferedFolderBackend(settings.data_dir, copies=settings.copies)
        case StorageKind.MEMORY:
            from holdfast.backends.memory import MemoryBackend

            return MemoryBackend()
        case StorageKind.SQLITE:
            from holdfast.backends.sqlite import SQLiteBackend, SQLiteSettings

            return SQLiteBackend(SQLiteSettings(url=settings.database_url, table_name=settings.table_name))
        case StorageKind.SQL:
            from holdfast.backends.sql import SQLBackend

            engine = create_engine(
                settings.database_url,
                echo=settings.database_echo,
                pool_size=settings.pool_size,
                max_overflow=settings.max_overflow,
                pool_timeout=settings.pool_timeout,
            )
            return SQLBackend(engine, table_name=settings.table_name, dispose_engine=True)
        case _:
            raise ConfigError(f"Unsupported backend: {settings.backend!r}")


def create_cache(settings: HoldfastSettings | None = None, **kwargs: Any) -> HolderCache:
    """Create a ``HolderCache`` over the backend selected by *settings*.

    Extra keyword arguments (``registry``, ``trace``) go to ``HolderCache``.
    """
    from holdfast.core.cache import HolderCache
    from holdfast.core.trace import HolderTrace

    settings = settings or get_settings()
    kwargs.setdefault("trace", HolderTrace(level="debug" if settings.log_level == "DEBUG" else "info"))
    kwargs.setdefault("lazy_decode", settings.lazy_decode)
    return HolderCache(create_backend(settings), **kwargs)


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, HoldfastSettings] = {}


def get_settings(*, _force_reload: bool = False) -> HoldfastSettings:
    """Load, validate and cache a :class:`HoldfastSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = HoldfastSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "StorageKind",
    "HoldfastSettings",
    "create_engine",
    "create_backend",
    "create_cache",
    "get_settings",
    "clear_settings_cache",
]
