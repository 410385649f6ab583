"""Tests for holdfast.core.settings module (configuration and factories)."""

import pytest
from pydantic import ValidationError

from holdfast.backends.buffered import BufferedFolderBackend
from holdfast.backends.folder import FolderBackend
from holdfast.backends.memory import MemoryBackend
from holdfast.core.cache import HolderCache
from holdfast.core.settings import (
    HoldfastSettings,
    StorageKind,
    clear_settings_cache,
    create_backend,
    create_cache,
    create_engine,
    get_settings,
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep stray HOLDFAST_* variables and .env files out of these tests."""
    monkeypatch.chdir(tmp_path)
    for key in (
        "HOLDFAST_BACKEND",
        "HOLDFAST_DATA_DIR",
        "HOLDFAST_COPIES",
        "HOLDFAST_DATABASE_URL",
        "HOLDFAST_TABLE_NAME",
        "HOLDFAST_LAZY_DECODE",
        "HOLDFAST_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestHoldfastSettings:
    """Test defaults, validation and env overrides."""

    def test_defaults(self):
        s = HoldfastSettings()
        assert s.backend == StorageKind.FOLDER
        assert s.copies == 2
        assert s.table_name == "holdfast"
        assert s.lazy_decode is False
        assert s.log_level == "INFO"
        assert s.is_relational is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("HOLDFAST_BACKEND", "buffered")
        monkeypatch.setenv("HOLDFAST_COPIES", "3")
        monkeypatch.setenv("HOLDFAST_LAZY_DECODE", "true")
        monkeypatch.setenv("HOLDFAST_LOG_LEVEL", "debug")
        s = HoldfastSettings()
        assert s.backend == StorageKind.BUFFERED
        assert s.copies == 3
        assert s.lazy_decode is True
        assert s.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("HOLDFAST_BACKEND=memory\nUNRELATED=1\n")
        assert HoldfastSettings().backend == StorageKind.MEMORY

    def test_copies_must_be_positive(self):
        with pytest.raises(ValidationError):
            HoldfastSettings(copies=0)

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            HoldfastSettings(backend="tape")

    def test_bad_log_level(self):
        with pytest.raises(ValidationError):
            HoldfastSettings(log_level="LOUD")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        assert get_settings(_force_reload=True) is not None


class TestCreateBackend:
    """Test create_backend()."""

    def test_folder(self, tmp_path):
        backend = create_backend(HoldfastSettings(backend="folder", data_dir=tmp_path))
        assert isinstance(backend, FolderBackend)
        assert backend.folder == tmp_path

    def test_buffered(self, tmp_path):
        backend = create_backend(HoldfastSettings(backend="buffered", data_dir=tmp_path, copies=4))
        assert isinstance(backend, BufferedFolderBackend)
        assert backend.copies == 4

    def test_memory(self):
        assert isinstance(create_backend(HoldfastSettings(backend="memory")), MemoryBackend)

    def test_sqlite(self, tmp_path):
        from holdfast.backends.sqlite import SQLiteBackend

        url = f"sqlite:///{(tmp_path / 'h.db').as_posix()}"
        backend = create_backend(HoldfastSettings(backend="sqlite", database_url=url, table_name="holders"))
        try:
            assert isinstance(backend, SQLiteBackend)
            assert backend.table_name == "holders"
        finally:
            backend.close()

    def test_sql(self, tmp_path):
        from holdfast.backends.sql import SQLBackend

        url = f"sqlite:///{(tmp_path / 'h.db').as_posix()}"
        backend = create_backend(HoldfastSettings(backend="sql", database_url=url))
        try:
            assert type(backend) is SQLBackend
            assert backend.dialect_name == "sqlite"
        finally:
            backend.close()


class TestCreateCache:
    """Test create_cache()."""

    def test_builds_cache(self, tmp_path, registry):
        cache = create_cache(HoldfastSettings(backend="memory", lazy_decode=True), registry=registry)
        assert isinstance(cache, HolderCache)
        assert isinstance(cache.backend, MemoryBackend)
        assert cache.lazy_decode is True
        assert cache.registry is registry
        assert cache.trace.level == "info"

    def test_debug_level_trace(self):
        cache = create_cache(HoldfastSettings(backend="memory", log_level="DEBUG"))
        assert cache.trace.level == "debug"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("HOLDFAST_BACKEND", "memory")
        assert isinstance(create_cache().backend, MemoryBackend)


class TestCreateEngine:
    """Test create_engine()."""

    def test_sqlite_memory(self):
        engine = create_engine("sqlite://")
        try:
            assert engine.dialect.name == "sqlite"
        finally:
            engine.dispose()

    def test_sqlite_file_uses_wal(self, tmp_path):
        from sqlalchemy import text

        engine = create_engine(f"sqlite:///{(tmp_path / 'wal.db').as_posix()}")
        try:
            with engine.connect() as conn:
                assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        finally:
            engine.dispose()
