"""
Tests for holdfast.backends.sql module.

Runs against temporary SQLite files through SQLAlchemy; the PostgreSQL and
MySQL upserts are checked by compiling their statements only.
"""

from uuid import UUID

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.dialects import mysql, postgresql

from holdfast.backends.base import is_enumerable
from holdfast.backends.sql import SQLBackend, get_upsert, holder_table, validate_table_name
from holdfast.core.cache import HolderCache
from holdfast.core.codec import HolderRecord
from holdfast.core.errors import ConfigError, DatabaseError, DecodeError
from holdfast.core.settings import create_engine
from tests._support.elements import Counter, record_dict

HOLDER_X = UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
HOLDER_Y = UUID("6fa459ea-ee8a-3ca4-894e-db77e160355e")


def _record(holder_id, n=1):
    return HolderRecord.model_validate(record_dict(holder_id, ("counter", {"n": n})))


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{(tmp_path / 'holdfast.db').as_posix()}"


@pytest.fixture
def backend(db_url):
    b = SQLBackend(db_url, table_name="holders")
    b.prepare()
    yield b
    b.close()


class TestSchema:
    """Test table creation and naming."""

    def test_prepare_creates_table(self, backend):
        inspector = inspect(backend.engine)
        assert "holders" in inspector.get_table_names()
        columns = {c["name"]: c for c in inspector.get_columns("holders")}
        assert set(columns) == {"uuid", "data"}
        assert columns["data"]["nullable"] is False
        assert inspector.get_pk_constraint("holders")["constrained_columns"] == ["uuid"]

    def test_prepare_is_idempotent(self, backend):
        backend.prepare()

    @pytest.mark.parametrize("name", ["", "1abc", "holders; DROP TABLE x", "a-b", "a.b"])
    def test_invalid_table_name(self, name):
        with pytest.raises(ConfigError):
            validate_table_name(name)

    def test_invalid_table_name_at_construction(self, db_url):
        with pytest.raises(ConfigError):
            SQLBackend(db_url, table_name="bad name")

    def test_holder_table(self):
        table = holder_table("things")
        assert [c.name for c in table.columns] == ["uuid", "data"]


class TestOperations:
    """Test save / load / remove / list."""

    def test_save_and_load(self, backend):
        backend.save(HOLDER_X, _record(HOLDER_X, 69))
        assert backend.load(HOLDER_X).data_map[0].data == {"n": 69}

    def test_save_is_upsert(self, backend):
        backend.save(HOLDER_X, _record(HOLDER_X, 1))
        backend.save(HOLDER_X, _record(HOLDER_X, 2))
        with backend.engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM holders")).scalar()
        assert count == 1
        assert backend.load(HOLDER_X).data_map[0].data == {"n": 2}

    def test_load_missing(self, backend):
        assert backend.load(HOLDER_X) is None

    def test_load_corrupt_row(self, backend):
        with backend.engine.begin() as conn:
            conn.execute(text("INSERT INTO holders (uuid, data) VALUES (:u, :d)"), {"u": str(HOLDER_X), "d": "{"})
        with pytest.raises(DecodeError):
            backend.load(HOLDER_X)

    def test_remove(self, backend):
        backend.save(HOLDER_X, _record(HOLDER_X))
        assert backend.remove(HOLDER_X) is True
        assert backend.remove(HOLDER_X) is False

    def test_list_all_ids(self, backend):
        backend.save(HOLDER_X, _record(HOLDER_X))
        backend.save(HOLDER_Y, _record(HOLDER_Y))
        assert is_enumerable(backend)
        assert backend.list_all_ids() == {HOLDER_X, HOLDER_Y}

    def test_missing_table_is_database_error(self, db_url):
        b = SQLBackend(db_url, table_name="never_created")
        try:
            with pytest.raises(DatabaseError) as exc_info:
                b.load(HOLDER_X)
            assert exc_info.value.context.holder_id == str(HOLDER_X)
            assert exc_info.value.context.metadata["table_name"] == "never_created"
        finally:
            b.close()

    def test_through_cache(self, backend, registry):
        cache = HolderCache(backend, registry=registry)
        h = cache.get_or_create(HOLDER_X)
        h.get_or_create(Counter).n = 69
        h.save()
        cache.unload(HOLDER_X)
        assert cache.get_or_load(HOLDER_X).get(Counter).n == 69


class TestEngineOwnership:
    """Test who disposes the engine."""

    def test_external_engine_not_disposed(self, db_url):
        engine = create_engine(db_url)
        b = SQLBackend(engine)
        b.prepare()
        b.close()
        with engine.connect() as conn:
            assert conn.execute(text("SELECT 1")).scalar() == 1
        engine.dispose()

    def test_dialect_name(self, backend):
        assert backend.dialect_name == "sqlite"


class TestUpserts:
    """Test the per-dialect upsert statements."""

    def test_known_dialects(self):
        for name in ("sqlite", "postgresql", "mysql", "mariadb"):
            assert get_upsert(name) is not None
        assert get_upsert("mssql") is None

    def test_postgresql_statement(self):
        stmt = get_upsert("postgresql")(holder_table("holders"), str(HOLDER_X), "{}")
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (uuid) DO UPDATE" in sql

    def test_mysql_statement(self):
        stmt = get_upsert("mysql")(holder_table("holders"), str(HOLDER_X), "{}")
        sql = str(stmt.compile(dialect=mysql.dialect()))
        assert "ON DUPLICATE KEY UPDATE" in sql

    def test_fallback_delete_insert(self, backend, monkeypatch):
        """Dialects without a native upsert replace via delete + insert."""
        monkeypatch.setattr("holdfast.backends.sql.get_upsert", lambda name: None)
        backend.save(HOLDER_X, _record(HOLDER_X, 1))
        backend.save(HOLDER_X, _record(HOLDER_X, 2))
        assert backend.load(HOLDER_X).data_map[0].data == {"n": 2}
        assert backend.list_all_ids() == {HOLDER_X}
