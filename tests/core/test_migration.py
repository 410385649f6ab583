"""
Tests for holdfast.core.migration module.

Covers:
- Completeness: stored holders plus loaded-but-unsaved ones arrive
- Non-enumerable source fails before any state change
- Per-record fault isolation and the MigrationReport
- Loaded holders survive a migration that aborts after the swap
- migration_progress cadence
"""

from uuid import UUID

import pytest
from structlog.testing import capture_logs

from holdfast.backends.base import StorageBackend
from holdfast.backends.buffered import BufferedFolderBackend
from holdfast.backends.folder import FolderBackend
from holdfast.backends.memory import MemoryBackend
from holdfast.core.cache import HolderCache
from holdfast.core.errors import MigrationError, StorageError, UnknownElementError
from holdfast.core.migration import MigrationReport, migrate
from tests._support.elements import Counter, Note

HOLDER_X = UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
HOLDER_Y = UUID("6fa459ea-ee8a-3ca4-894e-db77e160355e")
HOLDER_Z = UUID("886313e1-3b8a-5372-9b90-0c9aee199e5d")


class WriteOnlyBackend(StorageBackend):
    """A backend that cannot list its ids."""

    def __init__(self):
        super().__init__()
        self.records = {}

    def prepare(self):
        pass

    def save(self, holder_id, record):
        self.records[holder_id] = record

    def load(self, holder_id):
        return self.records.get(holder_id)

    def remove(self, holder_id):
        return self.records.pop(holder_id, None) is not None


def _store(cache, holder_id, n):
    h = cache.get_or_create(holder_id)
    h.get_or_create(Counter).n = n
    cache.save(h)
    return h


class TestMigrate:
    """Test migrate() end to end."""

    def test_stored_and_unsaved_holders_arrive(self, tmp_path, registry):
        """X and Y are stored, Z only exists in memory; all three arrive."""
        source = FolderBackend(tmp_path / "flat")
        cache = HolderCache(source, registry=registry)
        cache.prepare()
        _store(cache, HOLDER_X, 1)
        _store(cache, HOLDER_Y, 2)
        cache.unload(HOLDER_Y)
        cache.get_or_create(HOLDER_Z).get_or_create(Note).text = "unsaved"

        destination = BufferedFolderBackend(tmp_path / "buffered", copies=3)
        report = cache.migrate_to(destination)

        assert isinstance(report, MigrationReport)
        assert report.ok
        assert report.migrated == {HOLDER_X, HOLDER_Y, HOLDER_Z}
        assert report.from_memory == {HOLDER_X, HOLDER_Z}
        assert report.source == "FolderBackend"
        assert report.destination == "BufferedFolderBackend"

        assert cache.backend is destination
        assert len(cache) == 0
        assert destination.list_all_ids() == {HOLDER_X, HOLDER_Y, HOLDER_Z}
        assert cache.get_or_load(HOLDER_X).get(Counter).n == 1
        assert cache.get_or_load(HOLDER_Y).get(Counter).n == 2
        assert cache.get_or_load(HOLDER_Z).get(Note).text == "unsaved"

    def test_memory_state_wins(self, registry):
        """Unsaved edits of a loaded holder overwrite its stored copy."""
        cache = HolderCache(MemoryBackend(), registry=registry)
        h = _store(cache, HOLDER_X, 1)
        h.get(Counter).n = 2

        destination = MemoryBackend()
        cache.migrate_to(destination)
        assert destination.load(HOLDER_X).data_map[0].data == {"n": 2}

    def test_non_enumerable_source_fails_fast(self, registry):
        """Nothing changes when the source cannot list its ids."""
        source = WriteOnlyBackend()
        cache = HolderCache(source, registry=registry)
        h = cache.get_or_create(HOLDER_X)
        destination = MemoryBackend()

        with pytest.raises(MigrationError) as exc_info:
            migrate(cache, destination)

        assert exc_info.value.context.backend == "WriteOnlyBackend"
        assert cache.backend is source
        assert cache.get(HOLDER_X) is h
        assert len(destination) == 0

    def test_failures_are_isolated(self, registry):
        """A corrupt and an unresolvable record are reported; the rest migrate."""
        source = MemoryBackend()
        cache = HolderCache(source, registry=registry)
        _store(cache, HOLDER_X, 1)
        cache.unload(HOLDER_X)
        source.put_raw(HOLDER_Y, "{truncated")
        source.put_raw(
            HOLDER_Z,
            f'{{"uuid": "{HOLDER_Z}", "dataMap": [{{"class": "com.example.Gone", "data": {{}}}}]}}',
        )

        destination = MemoryBackend()
        report = cache.migrate_to(destination)

        assert not report.ok
        assert report.migrated == {HOLDER_X}
        assert set(report.failed) == {HOLDER_Y, HOLDER_Z}
        assert isinstance(report.failed[HOLDER_Z], UnknownElementError)
        assert destination.list_all_ids() == {HOLDER_X}

    def test_record_vanishing_is_skipped(self, registry):
        """An id that disappears between listing and loading is skipped."""
        source = MemoryBackend()
        cache = HolderCache(source, registry=registry)
        _store(cache, HOLDER_X, 1)
        cache.unload(HOLDER_X)
        source.list_all_ids = lambda: {HOLDER_X, HOLDER_Y}  # type: ignore[method-assign]

        report = cache.migrate_to(MemoryBackend())
        assert report.skipped == {HOLDER_Y}
        assert report.migrated == {HOLDER_X}
        assert report.ok

    def test_report_to_dict(self, registry):
        cache = HolderCache(MemoryBackend(), registry=registry)
        _store(cache, HOLDER_X, 1)
        d = cache.migrate_to(MemoryBackend()).to_dict()
        assert d["migrated"] == 1
        assert d["failed"] == {}
        assert d["source"] == "MemoryBackend"

    def test_listing_failure_keeps_loaded_holders(self, registry):
        """A source that fails to list still hands its loaded holders to the destination."""
        source = MemoryBackend()
        cache = HolderCache(source, registry=registry)
        cache.get_or_create(HOLDER_Z).get_or_create(Note).text = "unsaved"

        def broken_listing():
            raise StorageError("listing failed")

        source.list_all_ids = broken_listing  # type: ignore[method-assign]
        destination = MemoryBackend()

        with pytest.raises(MigrationError) as exc_info:
            cache.migrate_to(destination)

        assert isinstance(exc_info.value.__cause__, StorageError)
        assert exc_info.value.context.metadata["report"]["from_memory"] == 1
        assert cache.backend is destination
        assert destination.load(HOLDER_Z).data_map[0].data == {"text": "unsaved", "tags": []}


class TestProgress:
    """Test migration_progress events."""

    def _progress(self, registry, total, progress_every):
        source = MemoryBackend()
        cache = HolderCache(source, registry=registry)
        for i in range(total):
            _store(cache, UUID(int=i + 1), i)
        for holder in cache.holders():
            cache.unload(holder.id)
        with capture_logs() as logs:
            cache.migrate_to(MemoryBackend(), progress_every=progress_every)
        return [entry["processed"] for entry in logs if entry["event"] == "migration_progress"]

    def test_exact_multiple_reports_completion_once(self, registry):
        assert self._progress(registry, 4, 2) == [2, 4]

    def test_remainder_reports_completion(self, registry):
        assert self._progress(registry, 5, 2) == [2, 4, 5]

    def test_empty_source_reports_completion(self, registry):
        assert self._progress(registry, 0, 2) == [0]
