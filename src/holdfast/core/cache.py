"""
Holder cache - the session-level registry of loaded holders.

Manifesto:
    Every create, load, save and delete goes through one ``HolderCache``.
    It de-duplicates holders by id, so two callers asking for the same id
    share one instance, and it is the only owner of "which backend is
    active".

    - **One instance per id:** concurrent ``get_or_load`` calls never
      register two holders for the same id
    - **Explicit persistence:** ``get_or_create`` never writes; ``save`` does
    - **Atomic swap:** a backend swap clears the registry in the same step,
      so nobody sees the new backend alongside holders from the old one

Architecture:
    ::

        caller ──▶ HolderCache ──▶ StorageBackend ──▶ durable medium
                      │   ▲
                      ▼   │
                   HolderCodec (encode / decode)

        get(id)          memory only
        get_or_load(id)  memory, else backend.load + decode + register
        get_or_create    get_or_load, else empty holder (not persisted)
        save(holder)     before_save hooks → encode → backend.save
        delete(id)       unload + backend.remove
        migrate_to(dst)  see holdfast.core.migration

Concurrency:
    An ``RLock`` guards the registry and the backend reference.  Backend
    I/O and decoding run outside the lock; a generation counter bumped by
    every swap makes a load or create that raced a swap retry against the
    new backend instead of registering a stale holder.

Examples:
    >>> from holdfast import FolderBackend, HolderCache
    >>> cache = HolderCache(FolderBackend("data/holders"))
    >>> cache.prepare()
    >>> holder = cache.get_or_create(user_id)
    >>> holder.get_or_create(Counter).n += 1
    >>> cache.save(holder)

Tags:
    holdfast, cache, session, registry, concurrency, migration

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING
from uuid import UUID

from holdfast.core.codec import HolderCodec
from holdfast.core.holder import DataHolder
from holdfast.core.registry import TypeRegistry
from holdfast.core.trace import HolderTrace

if TYPE_CHECKING:
    from holdfast.backends.base import StorageBackend
    from holdfast.core.migration import MigrationReport


def as_holder_id(value: UUID | str) -> UUID:
    """Coerce a UUID or its string form into a ``UUID``."""
    return value if isinstance(value, UUID) else UUID(str(value))


class HolderCache:
    """In-memory registry of holders bound to one active storage backend."""

    def __init__(
        self,
        backend: StorageBackend,
        *,
        registry: TypeRegistry | None = None,
        trace: HolderTrace | None = None,
        lazy_decode: bool = False,
    ) -> None:
        self.codec = HolderCodec(registry)
        self.trace = trace if trace is not None else HolderTrace()
        self.lazy_decode = lazy_decode
        self._lock = threading.RLock()
        self._backend = backend
        self._generation = 0
        self._holders: dict[UUID, DataHolder] = {}

    @property
    def registry(self) -> TypeRegistry:
        return self.codec.registry

    @property
    def backend(self) -> StorageBackend:
        with self._lock:
            return self._backend

    def prepare(self) -> None:
        """Prepare the active backend (directories, tables)."""
        backend = self.backend
        backend.prepare()
        self.trace.log_prepared(backend.name)

    # -- lookup ------------------------------------------------------------

    def get(self, holder_id: UUID | str) -> DataHolder | None:
        """The loaded holder of ``holder_id``; never touches the backend."""
        holder_id = as_holder_id(holder_id)
        with self._lock:
            holder = self._holders.get(holder_id)
        if holder is not None:
            self.trace.log_read(holder_id)
        return holder

    def get_or_load(self, holder_id: UUID | str) -> DataHolder | None:
        """The loaded holder, else the one stored in the backend, else ``None``.

        Raises:
            DecodeError: If the stored record cannot be decoded
            StorageError: If the backend cannot be read
            DatabaseError: If the database driver fails
        """
        holder_id = as_holder_id(holder_id)
        while True:
            with self._lock:
                holder = self._holders.get(holder_id)
                backend, generation = self._backend, self._generation
            if holder is not None:
                self.trace.log_read(holder_id)
                return holder

            record = backend.load(holder_id)
            if record is None:
                return None
            loaded = self.codec.decode(record, self, lazy=self.lazy_decode)

            with self._lock:
                if generation != self._generation:
                    continue
                holder = self._holders.setdefault(holder_id, loaded)
            if holder is loaded:
                self.trace.log_load(holder_id, backend.name)
            else:
                self.trace.log_read(holder_id)
            return holder

    def get_or_create(self, holder_id: UUID | str) -> DataHolder:
        """The loaded or stored holder, else a new empty one (not persisted)."""
        holder_id = as_holder_id(holder_id)
        while True:
            with self._lock:
                generation = self._generation
            holder = self.get_or_load(holder_id)
            if holder is not None:
                return holder

            created = DataHolder(holder_id, self, codec=self.codec)
            with self._lock:
                if generation != self._generation:
                    continue
                holder = self._holders.setdefault(holder_id, created)
            if holder is created:
                self.trace.log_create(holder_id)
            return holder

    def holders(self) -> list[DataHolder]:
        """Snapshot of the loaded holders."""
        with self._lock:
            return list(self._holders.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._holders)

    def __contains__(self, holder_id: object) -> bool:
        if not isinstance(holder_id, (UUID, str)):
            return False
        try:
            key = as_holder_id(holder_id)
        except ValueError:
            return False
        with self._lock:
            return key in self._holders

    # -- registration ------------------------------------------------------

    def add(self, holder: DataHolder) -> bool:
        """Register ``holder`` unless one with the same id is loaded."""
        holder._bind(self)
        with self._lock:
            added = self._holders.setdefault(holder.id, holder) is holder
        return added

    def add_or_replace(self, holder: DataHolder) -> None:
        """Register ``holder``, evicting any loaded holder with the same id."""
        holder._bind(self)
        with self._lock:
            previous = self._holders.get(holder.id)
            self._holders[holder.id] = holder
        if previous is not None and previous is not holder:
            self.trace.log_write("replaced", holder.id)

    def unload(self, holder_id: UUID | str) -> bool:
        """Drop ``holder_id`` from memory; the stored record is untouched."""
        holder_id = as_holder_id(holder_id)
        with self._lock:
            unloaded = self._holders.pop(holder_id, None) is not None
        if unloaded:
            self.trace.log_write("unloaded", holder_id)
        return unloaded

    # -- persistence -------------------------------------------------------

    def save(self, holder: DataHolder) -> None:
        """Run ``before_save`` hooks, encode and write the whole record."""
        for element in holder.elements.values():
            element.before_save()
        self.trace.log_write("before_save", holder.id)

        record = self.codec.encode(holder)
        backend = self.backend
        backend.save(holder.id, record)
        self.trace.log_write("saved", holder.id, backend=backend.name, elements=len(record.data_map))

    def delete(self, holder_id: UUID | str) -> bool:
        """Unload ``holder_id`` and remove its stored record; ``True`` if one existed."""
        holder_id = as_holder_id(holder_id)
        self.unload(holder_id)
        backend = self.backend
        existed = backend.remove(holder_id)
        self.trace.log_write("deleted", holder_id, backend=backend.name, existed=existed)
        return existed

    # -- backend lifecycle ---------------------------------------------------

    def swap_backend(self, backend: StorageBackend) -> tuple[StorageBackend, list[DataHolder]]:
        """Make ``backend`` active and clear the registry in one step.

        Returns the previous backend and the holders that were loaded.
        """
        with self._lock:
            previous, snapshot = self._backend, list(self._holders.values())
            self._holders.clear()
            self._backend = backend
            self._generation += 1
        return previous, snapshot

    def migrate_to(self, destination: StorageBackend, *, progress_every: int = 100) -> MigrationReport:
        """Move every stored and loaded holder to ``destination``.

        See :func:`holdfast.core.migration.migrate`.
        """
        from holdfast.core.migration import migrate

        return migrate(self, destination, progress_every=progress_every)

    def close(self) -> None:
        """Close the active backend."""
        self.backend.close()

    def __enter__(self) -> HolderCache:
        self.prepare()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        with self._lock:
            return f"HolderCache(backend={self._backend!r}, holders={len(self._holders)})"


__all__ = ["HolderCache", "as_holder_id"]
