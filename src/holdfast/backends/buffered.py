"""
Buffered folder backend - N independent copies per holder.

Manifesto:
    A crash in the middle of a write can leave one file truncated.  Writing
    the same record to several independently named files means at least one
    copy is still readable after any single interrupted write.

    - **Sequential writes:** copy 0 first, then 1..N-1; any failure is fatal
    - **Scan-order load:** the first copy that exists *and* decodes wins
    - **Absent is not broken:** no copy at all → ``None``; copies present
      but none readable → ``DecodeError`` chained to the last failure

Architecture:
    ::

        <folder>/
            7c1f....json       copy 0
            7c1f..._1.json     copy 1
            7c1f..._2.json     copy 2   (copies=3)

Tags:
    holdfast, storage, backend, filesystem, crash-resilience

Doc-Types:
    - API Reference
    - Storage Layout Reference
"""

from __future__ import annotations

import re
from pathlib import Path
from uuid import UUID

from holdfast.backends.base import StorageBackend, parse_holder_id
from holdfast.backends.folder import read_record, remove_file, write_record
from holdfast.core.codec import HolderRecord
from holdfast.core.errors import ConfigError, DecodeError, HoldfastError, StorageError
from holdfast.core.logging import get_logger

logger = get_logger(__name__)

_COPY_SUFFIX = re.compile(r"_(\d+)$")


class BufferedFolderBackend(StorageBackend):
    """Stores every holder record ``copies`` times in one folder."""

    def __init__(self, folder: str | Path, copies: int = 2, *, name: str | None = None) -> None:
        if copies < 1:
            raise ConfigError(f"BufferedFolderBackend needs at least one copy, got {copies}").with_context(
                backend=name or type(self).__name__, copies=copies
            )
        super().__init__(name)
        self.folder = Path(folder)
        self.copies = copies

    def prepare(self) -> None:
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directories towards {self.folder}", cause=e).with_context(
                backend=self.name, path=str(self.folder)
            ) from e

    def copy_paths(self, holder_id: UUID) -> list[Path]:
        """Paths of every copy in scan order; copy 0 carries no suffix."""
        return [self.folder / (f"{holder_id}.json" if i == 0 else f"{holder_id}_{i}.json") for i in range(self.copies)]

    def save(self, holder_id: UUID, record: HolderRecord) -> None:
        for path in self.copy_paths(holder_id):
            write_record(path, record, holder_id=holder_id, backend=self.name)

    def load(self, holder_id: UUID) -> HolderRecord | None:
        last_failure: HoldfastError | None = None
        for index, path in enumerate(self.copy_paths(holder_id)):
            if not path.exists():
                continue
            try:
                return read_record(path, holder_id=holder_id, backend=self.name)
            except (DecodeError, StorageError) as e:
                logger.warning("copy_unreadable", holder_id=str(holder_id), copy=index, path=str(path), error=str(e))
                last_failure = e

        if last_failure is None:
            return None
        raise DecodeError(
            f"Could not load DataHolder with UUID {holder_id}: no readable copy out of {self.copies}",
            cause=last_failure,
        ).with_context(holder_id=str(holder_id), backend=self.name) from last_failure

    def remove(self, holder_id: UUID) -> bool:
        removed = False
        for path in self.copy_paths(holder_id):
            removed = remove_file(path, holder_id=holder_id, backend=self.name) or removed
        return removed

    def list_all_ids(self) -> set[UUID]:
        if not self.folder.is_dir():
            return set()
        ids = set()
        for path in self.folder.glob("*.json"):
            holder_id = parse_holder_id(_COPY_SUFFIX.sub("", path.stem))
            if holder_id is not None:
                ids.add(holder_id)
        return ids

    def __repr__(self) -> str:
        return f"BufferedFolderBackend(folder={str(self.folder)!r}, copies={self.copies})"


__all__ = ["BufferedFolderBackend"]
