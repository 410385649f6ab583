"""
Migration engine - move every holder from one backend to another.

Manifesto:
    Switching storage engines must not lose data, including holders that
    only exist in memory.  Migration runs record by record: one broken
    record is reported and skipped, it never aborts the batch.

    - **Enumerable source:** the current backend must list its ids; if it
      cannot, migration refuses to start and nothing changes
    - **Per-record isolation:** failures are traced and collected in the
      ``MigrationReport``; no aggregate exception is raised
    - **Memory wins:** holders loaded at swap time are re-saved last, so
      unsaved edits overwrite the copy read from the old backend

Architecture:
    ::

        1. require is_enumerable(cache.backend)     ──▶ MigrationError
        2. swap_backend(destination)                old backend + snapshot
        3. prepare() old and destination           ─┐ on failure: step 6,
        4. old.list_all_ids()                      ─┘ then MigrationError
        5. for id: old.load → decode → cache.save   (isolated per id)
        6. for holder in snapshot: cache.save       (isolated per holder)
        7. MigrationReport

Examples:
    >>> report = cache.migrate_to(SQLiteBackend(SQLiteSettings(file_name="holders.db")))
    >>> report.ok, report.migrated_count, report.failed
    (True, 1204, {})

Tags:
    holdfast, migration, backend, fault-isolation

Doc-Types:
    - API Reference
    - Operations Guide
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID

from holdfast.backends.base import is_enumerable
from holdfast.core.errors import MigrationError
from holdfast.core.logging import LogContext

if TYPE_CHECKING:
    from holdfast.backends.base import StorageBackend
    from holdfast.core.cache import HolderCache
    from holdfast.core.holder import DataHolder


@dataclass
class MigrationReport:
    """Outcome of one migration run."""

    source: str
    destination: str
    migrated: set[UUID] = field(default_factory=set)
    skipped: set[UUID] = field(default_factory=set)
    failed: dict[UUID, BaseException] = field(default_factory=dict)
    from_memory: set[UUID] = field(default_factory=set)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def migrated_count(self) -> int:
        return len(self.migrated)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "destination": self.destination,
            "migrated": len(self.migrated),
            "skipped": len(self.skipped),
            "failed": {str(holder_id): str(error) for holder_id, error in self.failed.items()},
            "from_memory": len(self.from_memory),
            "duration_ms": round(self.duration_ms, 2),
        }


def migrate(cache: HolderCache, destination: StorageBackend, *, progress_every: int = 100) -> MigrationReport:
    """Migrate every record of the active backend, plus loaded holders, to ``destination``.

    Afterwards ``destination`` is the active backend of ``cache`` and the
    in-memory registry is empty.

    Raises:
        MigrationError: If the active backend cannot enumerate its ids (the
            cache is left untouched), or if preparing the backends or listing
            the ids fails after the swap (loaded holders are still re-saved
            and the partial report is in the error context)
    """
    source = cache.backend
    if not is_enumerable(source):
        raise MigrationError(
            f"Storage backend {source.name} does not support listing its holders, migration cannot proceed"
        ).with_context(backend=source.name, destination=destination.name)

    trace = cache.trace
    report = MigrationReport(source=source.name, destination=destination.name)
    started = time.perf_counter()

    with LogContext(migration=f"{source.name}->{destination.name}"):
        previous, snapshot = cache.swap_backend(destination)
        try:
            previous.prepare()
            destination.prepare()
            holder_ids = sorted(previous.list_all_ids())  # type: ignore[attr-defined]
        except Exception as e:
            trace.log_failure("migration_aborted", e, in_memory=len(snapshot))
            _resave_snapshot(cache, snapshot, report)
            report.duration_ms = (time.perf_counter() - started) * 1000
            raise MigrationError(
                f"Migration from {source.name} to {destination.name} aborted before copying stored holders", cause=e
            ).with_context(backend=source.name, destination=destination.name, report=report.to_dict()) from e

        trace.log_misc("migration_started", total=len(holder_ids), in_memory=len(snapshot))

        for count, holder_id in enumerate(holder_ids, start=1):
            try:
                record = previous.load(holder_id)
                if record is None:
                    report.skipped.add(holder_id)
                else:
                    cache.save(cache.codec.decode(record, cache, lazy=cache.lazy_decode))
                    report.migrated.add(holder_id)
            except Exception as e:
                report.failed[holder_id] = e
                trace.log_failure("migration_record_failed", e, holder_id=str(holder_id), phase="stored")

            if progress_every > 0 and count % progress_every == 0:
                trace.log_misc("migration_progress", processed=count, total=len(holder_ids))

        if progress_every <= 0 or not holder_ids or len(holder_ids) % progress_every:
            trace.log_misc("migration_progress", processed=len(holder_ids), total=len(holder_ids))

        _resave_snapshot(cache, snapshot, report)

        report.duration_ms = (time.perf_counter() - started) * 1000
        trace.log_misc(
            "migration_finished",
            migrated=len(report.migrated),
            skipped=len(report.skipped),
            failed=len(report.failed),
            duration_ms=round(report.duration_ms, 2),
        )
    return report


def _resave_snapshot(cache: HolderCache, snapshot: list[DataHolder], report: MigrationReport) -> None:
    """Save the holders that were loaded at swap time; their state overrides the stored copy."""
    for holder in snapshot:
        try:
            cache.save(holder)
        except Exception as e:
            report.failed[holder.id] = e
            cache.trace.log_failure("migration_record_failed", e, holder_id=str(holder.id), phase="memory")
        else:
            report.from_memory.add(holder.id)
            report.migrated.add(holder.id)
            report.skipped.discard(holder.id)
            report.failed.pop(holder.id, None)


__all__ = ["MigrationReport", "migrate"]
