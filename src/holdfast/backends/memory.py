"""In-process backend keeping serialized records in a dict.

Records are stored as JSON text, not as live objects, so a load always
produces fresh instances and exercises the same codec path as the durable
backends.  Useful for tests and as a migration destination in dry runs.

Tags:
    holdfast, storage, backend, memory, testing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from uuid import UUID

from holdfast.backends.base import StorageBackend
from holdfast.core.codec import HolderRecord
from holdfast.core.errors import DecodeError


class MemoryBackend(StorageBackend):
    """Thread-safe dict of ``holder_id -> record JSON``."""

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(name)
        self._lock = threading.Lock()
        self._records: dict[UUID, str] = {}

    def prepare(self) -> None:
        pass

    def save(self, holder_id: UUID, record: HolderRecord) -> None:
        text = record.to_json()
        with self._lock:
            self._records[holder_id] = text

    def load(self, holder_id: UUID) -> HolderRecord | None:
        with self._lock:
            text = self._records.get(holder_id)
        if text is None:
            return None
        try:
            return HolderRecord.from_json(text)
        except DecodeError as e:
            raise e.with_context(holder_id=str(holder_id), backend=self.name)

    def remove(self, holder_id: UUID) -> bool:
        with self._lock:
            return self._records.pop(holder_id, None) is not None

    def list_all_ids(self) -> set[UUID]:
        with self._lock:
            return set(self._records)

    def raw(self, holder_id: UUID) -> str | None:
        """Stored JSON text of ``holder_id``."""
        with self._lock:
            return self._records.get(holder_id)

    def put_raw(self, holder_id: UUID, text: str) -> None:
        """Store ``text`` verbatim (no validation)."""
        with self._lock:
            self._records[holder_id] = text

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


__all__ = ["MemoryBackend"]
