"""
Relational backend over a SQLAlchemy engine.

Manifesto:
    One table, one row per holder, the whole record in a text column.  The
    engine owns the connection pool; every operation borrows a connection
    in a ``with`` block so it is returned on every exit path, errors
    included.

    - **Parameterized:** statements are built with SQLAlchemy Core
    - **Upsert per dialect:** native conflict clauses where the dialect has
      one, delete+insert in a single transaction elsewhere
    - **Driver errors surface:** ``SQLAlchemyError`` becomes ``DatabaseError``

Architecture:
    ::

        CREATE TABLE <table_name> (
            uuid VARCHAR(36) PRIMARY KEY,
            data TEXT NOT NULL
        )

        ┌──────────┐ ┌──────────────┐ ┌───────────────┐ ┌─────────────────┐
        │ SQLite   │ │ PostgreSQL   │ │ MySQL/MariaDB │ │ other           │
        │ ON CONF. │ │ ON CONFLICT  │ │ ON DUPLICATE  │ │ DELETE + INSERT │
        │ DO UPD.  │ │ DO UPDATE    │ │ KEY UPDATE    │ │ (one txn)       │
        └──────────┘ └──────────────┘ └───────────────┘ └─────────────────┘

Examples:
    >>> from holdfast.backends.sql import SQLBackend
    >>> backend = SQLBackend("postgresql+psycopg://app@db/app", table_name="holders")
    >>> backend.prepare()

Tags:
    holdfast, storage, backend, sqlalchemy, sql, upsert, dialect

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager, nullcontext
from typing import Any
from uuid import UUID

from sqlalchemy import Column, MetaData, String, Table, Text, delete, insert, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import Executable

from holdfast.backends.base import StorageBackend, parse_holder_id
from holdfast.core.codec import HolderRecord
from holdfast.core.errors import ConfigError, DatabaseError, DecodeError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_table_name(table_name: str) -> str:
    """Return ``table_name`` if it is a plain SQL identifier, else raise ``ConfigError``."""
    if not _IDENTIFIER.match(table_name or ""):
        raise ConfigError(f"Invalid table name {table_name!r}: expected a plain identifier").with_context(
            table_name=table_name
        )
    return table_name


def holder_table(table_name: str, metadata: MetaData | None = None) -> Table:
    """The ``(uuid, data)`` table definition."""
    return Table(
        validate_table_name(table_name),
        metadata if metadata is not None else MetaData(),
        Column("uuid", String(36), primary_key=True),
        Column("data", Text, nullable=False),
    )


# ── Dialect upserts ──────────────────────────────────────────────────────

UpsertBuilder = Callable[[Table, str, str], Executable]


def _sqlite_upsert(table: Table, holder_id: str, data: str) -> Executable:
    stmt = sqlite.insert(table).values(uuid=holder_id, data=data)
    return stmt.on_conflict_do_update(index_elements=[table.c.uuid], set_={"data": stmt.excluded.data})


def _postgresql_upsert(table: Table, holder_id: str, data: str) -> Executable:
    stmt = postgresql.insert(table).values(uuid=holder_id, data=data)
    return stmt.on_conflict_do_update(index_elements=[table.c.uuid], set_={"data": stmt.excluded.data})


def _mysql_upsert(table: Table, holder_id: str, data: str) -> Executable:
    stmt = mysql.insert(table).values(uuid=holder_id, data=data)
    return stmt.on_duplicate_key_update(data=stmt.inserted.data)


_UPSERTS: dict[str, UpsertBuilder] = {
    "sqlite": _sqlite_upsert,
    "postgresql": _postgresql_upsert,
    "mysql": _mysql_upsert,
    "mariadb": _mysql_upsert,
}


def get_upsert(dialect_name: str) -> UpsertBuilder | None:
    """Native upsert builder for a dialect name, ``None`` if it has none."""
    return _UPSERTS.get(dialect_name.lower())


# ── Backend ──────────────────────────────────────────────────────────────


class SQLBackend(StorageBackend):
    """Stores holder records in a relational table through a SQLAlchemy engine.

    ``engine`` is either a ready ``Engine`` (the caller keeps ownership of
    its pool unless ``dispose_engine=True``) or a database URL, in which case
    the backend builds and owns the engine.
    """

    def __init__(
        self,
        engine: Engine | str,
        table_name: str = "holdfast",
        *,
        name: str | None = None,
        dispose_engine: bool | None = None,
        **engine_kwargs: Any,
    ) -> None:
        super().__init__(name)
        self.metadata = MetaData()
        self.table = holder_table(table_name, self.metadata)
        if isinstance(engine, str):
            from holdfast.core.settings import create_engine

            engine = create_engine(engine, **engine_kwargs)
            dispose_engine = True if dispose_engine is None else dispose_engine
        self.engine = engine
        self._dispose_engine = bool(dispose_engine)
        self._lock: threading.RLock | None = None

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def prepare(self) -> None:
        with self._database_errors("create table"):
            self.metadata.create_all(self.engine, checkfirst=True)

    def save(self, holder_id: UUID, record: HolderRecord) -> None:
        key, data = str(holder_id), record.to_json()
        upsert = get_upsert(self.dialect_name)
        with self._database_errors("save", holder_id), self.engine.begin() as conn:
            if upsert is not None:
                conn.execute(upsert(self.table, key, data))
            else:
                conn.execute(delete(self.table).where(self.table.c.uuid == key))
                conn.execute(insert(self.table).values(uuid=key, data=data))

    def load(self, holder_id: UUID) -> HolderRecord | None:
        stmt = select(self.table.c.data).where(self.table.c.uuid == str(holder_id))
        with self._database_errors("load", holder_id), self.engine.connect() as conn:
            data = conn.execute(stmt).scalar_one_or_none()
        if data is None:
            return None
        try:
            return HolderRecord.from_json(data)
        except DecodeError as e:
            raise e.with_context(holder_id=str(holder_id), backend=self.name)

    def remove(self, holder_id: UUID) -> bool:
        stmt = delete(self.table).where(self.table.c.uuid == str(holder_id))
        with self._database_errors("remove", holder_id), self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def list_all_ids(self) -> set[UUID]:
        with self._database_errors("list ids"), self.engine.connect() as conn:
            keys = conn.execute(select(self.table.c.uuid)).scalars().all()
        ids = set()
        for key in keys:
            holder_id = parse_holder_id(key)
            if holder_id is not None:
                ids.add(holder_id)
        return ids

    def close(self) -> None:
        if self._dispose_engine:
            self.engine.dispose()

    @contextmanager
    def _database_errors(self, operation: str, holder_id: UUID | None = None) -> Iterator[None]:
        with self._lock if self._lock is not None else nullcontext():
            try:
                yield
            except SQLAlchemyError as e:
                subject = f" DataHolder with UUID {holder_id}" if holder_id is not None else ""
                error = DatabaseError(f"Could not {operation}{subject} in table {self.table_name}", cause=e)
                error.with_context(backend=self.name, table_name=self.table_name, operation=operation)
                if holder_id is not None:
                    error.with_context(holder_id=str(holder_id))
                raise error from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.engine.url!r}, table_name={self.table_name!r})"


__all__ = [
    "SQLBackend",
    "holder_table",
    "validate_table_name",
    "get_upsert",
]
