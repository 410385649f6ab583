"""Folder backend - one ``<uuid>.json`` file per holder.

Tags:
    holdfast, storage, backend, filesystem, json

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

from holdfast.backends.base import StorageBackend, parse_holder_id
from holdfast.core.codec import HolderRecord
from holdfast.core.errors import DecodeError, StorageError


class FolderBackend(StorageBackend):
    """Stores each holder record as ``<folder>/<uuid>.json``."""

    def __init__(self, folder: str | Path, *, name: str | None = None) -> None:
        super().__init__(name)
        self.folder = Path(folder)

    def prepare(self) -> None:
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directories towards {self.folder}", cause=e).with_context(
                backend=self.name, path=str(self.folder)
            ) from e

    def path_for(self, holder_id: UUID) -> Path:
        return self.folder / f"{holder_id}.json"

    def save(self, holder_id: UUID, record: HolderRecord) -> None:
        write_record(self.path_for(holder_id), record, holder_id=holder_id, backend=self.name)

    def load(self, holder_id: UUID) -> HolderRecord | None:
        path = self.path_for(holder_id)
        if not path.exists():
            return None
        return read_record(path, holder_id=holder_id, backend=self.name)

    def remove(self, holder_id: UUID) -> bool:
        return remove_file(self.path_for(holder_id), holder_id=holder_id, backend=self.name)

    def list_all_ids(self) -> set[UUID]:
        if not self.folder.is_dir():
            return set()
        ids = set()
        for path in self.folder.glob("*.json"):
            holder_id = parse_holder_id(path.stem)
            if holder_id is not None:
                ids.add(holder_id)
        return ids

    def __repr__(self) -> str:
        return f"FolderBackend(folder={str(self.folder)!r})"


# ── shared file helpers ──────────────────────────────────────────────────


def write_record(path: Path, record: HolderRecord, *, holder_id: UUID, backend: str) -> None:
    try:
        path.write_text(record.to_json(), encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Could not save DataHolder with UUID {holder_id}", cause=e).with_context(
            holder_id=str(holder_id), backend=backend, path=str(path)
        ) from e


def read_record(path: Path, *, holder_id: UUID, backend: str) -> HolderRecord:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Could not load DataHolder with UUID {holder_id}", cause=e).with_context(
            holder_id=str(holder_id), backend=backend, path=str(path)
        ) from e
    except OSError as e:
        raise StorageError(f"Could not load DataHolder with UUID {holder_id}", cause=e).with_context(
            holder_id=str(holder_id), backend=backend, path=str(path)
        ) from e

    try:
        return HolderRecord.from_json(text)
    except DecodeError as e:
        raise e.with_context(holder_id=str(holder_id), backend=backend, path=str(path))


def remove_file(path: Path, *, holder_id: UUID, backend: str) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageError(f"Could not remove DataHolder with UUID {holder_id}", cause=e).with_context(
            holder_id=str(holder_id), backend=backend, path=str(path)
        ) from e
    return True


__all__ = ["FolderBackend", "write_record", "read_record", "remove_file"]
