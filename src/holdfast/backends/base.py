"""
Storage backend contract (SYNC-ONLY).

Manifesto:
    A backend is a durable key → record store and nothing more.  It does not
    know which holders are loaded, it does not decode elements, and it never
    performs partial updates: every save replaces the whole record.

    - **Sync-only:** Every operation blocks the caller until the medium answers
    - **NotFound is a value:** ``load`` returns ``None`` for a missing record
    - **Failures propagate:** I/O and driver faults are raised, never swallowed

Architecture:
    ::

        StorageBackend (ABC)
        ├── FolderBackend          <dir>/<uuid>.json
        ├── BufferedFolderBackend  <dir>/<uuid>.json, <uuid>_1.json, ...
        ├── SQLBackend             pooled SQLAlchemy engine
        │   └── SQLiteBackend      single shared handle + lock
        └── MemoryBackend          dict of JSON text

        Enumerable (Protocol)
            list_all_ids() → set[UUID]      required of a migration source

Tags:
    storage, backend, protocol, holdfast

Doc-Types:
    - API Reference
    - Backend Implementation Guide
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from holdfast.core.codec import HolderRecord


class StorageBackend(ABC):
    """Abstract durable store of holder records addressed by id."""

    def __init__(self, name: str | None = None) -> None:
        self._name = name or type(self).__name__

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def prepare(self) -> None:
        """Idempotent setup (create directories, tables, ...)."""
        ...

    @abstractmethod
    def save(self, holder_id: UUID, record: HolderRecord) -> None:
        """Create or replace the record of ``holder_id``."""
        ...

    @abstractmethod
    def load(self, holder_id: UUID) -> HolderRecord | None:
        """The record of ``holder_id``, or ``None`` if there is none."""
        ...

    @abstractmethod
    def remove(self, holder_id: UUID) -> bool:
        """Delete the record of ``holder_id``; ``True`` if one existed."""
        ...

    def close(self) -> None:
        """Release held resources (pools, handles). Default: no-op."""

    def __enter__(self) -> StorageBackend:
        self.prepare()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


@runtime_checkable
class Enumerable(Protocol):
    """Capability of listing every stored id."""

    def list_all_ids(self) -> set[UUID]:
        ...


def is_enumerable(backend: object) -> bool:
    """Whether ``backend`` can serve as a migration source."""
    return isinstance(backend, Enumerable)


def parse_holder_id(value: str) -> UUID | None:
    """Parse a stored id; ``None`` for anything that is not a UUID."""
    try:
        return UUID(value)
    except ValueError:
        return None


__all__ = [
    "StorageBackend",
    "Enumerable",
    "is_enumerable",
    "parse_holder_id",
]
