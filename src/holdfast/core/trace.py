"""Holder trace sink - per-event verbosity over a structlog logger.

The cache, the codec and the migration engine report what they do through
a ``HolderTrace``.  Each family of events can be switched on or off
independently so a busy session can log migrations without logging every
cache hit.

Flags (defaults in brackets):

* ``misc``   [on]  - ``prepared``, ``migration_*`` and other lifecycle events
* ``load``   [off] - ``loaded`` (a holder was read from the backend)
* ``read``   [off] - ``read`` (a holder was served from memory)
* ``write``  [off] - ``before_save``, ``saved``, ``replaced``, ``unloaded``, ``deleted``
* ``create`` [off] - ``created`` (an empty holder was constructed)

Tags:
    holdfast, logging, trace, structlog

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from holdfast.core.logging import get_logger

_LEVELS = ("debug", "info", "warning", "error")


class HolderTrace:
    """Structured trace events for holder lifecycle operations."""

    def __init__(
        self,
        logger: Any = None,
        *,
        level: str = "debug",
        misc: bool = True,
        load: bool = False,
        read: bool = False,
        write: bool = False,
        create: bool = False,
    ) -> None:
        level = level.lower()
        if level not in _LEVELS:
            raise ValueError(f"Unknown trace level '{level}'. Supported: {', '.join(_LEVELS)}")

        self.logger = logger if logger is not None else get_logger("holdfast")
        self.level = level
        self.misc = misc
        self.load = load
        self.read = read
        self.write = write
        self.create = create

    @classmethod
    def silent(cls, logger: Any = None) -> HolderTrace:
        """A trace with every event family disabled."""
        return cls(logger, misc=False)

    @classmethod
    def verbose(cls, logger: Any = None, level: str = "debug") -> HolderTrace:
        """A trace with every event family enabled."""
        return cls(logger, level=level, misc=True, load=True, read=True, write=True, create=True)

    def _emit(self, event: str, **fields: Any) -> None:
        getattr(self.logger, self.level)(event, **fields)

    # -- lifecycle ---------------------------------------------------------

    def log_misc(self, event: str, **fields: Any) -> None:
        if self.misc:
            self._emit(event, **fields)

    def log_failure(self, event: str, exception: BaseException, **fields: Any) -> None:
        """Report a caught failure together with its traceback."""
        if self.misc:
            self.logger.warning(event, exc_info=exception, error=str(exception), **fields)

    def log_prepared(self, backend: str) -> None:
        self.log_misc("prepared", backend=backend)

    # -- holders -----------------------------------------------------------

    def log_load(self, holder_id: UUID, backend: str) -> None:
        if self.load:
            self._emit("loaded", holder_id=str(holder_id), backend=backend)

    def log_read(self, holder_id: UUID) -> None:
        if self.read:
            self._emit("read", holder_id=str(holder_id))

    def log_create(self, holder_id: UUID) -> None:
        if self.create:
            self._emit("created", holder_id=str(holder_id))

    def log_write(self, event: str, holder_id: UUID, **fields: Any) -> None:
        if self.write:
            self._emit(event, holder_id=str(holder_id), **fields)

    def __repr__(self) -> str:
        flags = [name for name in ("misc", "load", "read", "write", "create") if getattr(self, name)]
        return f"HolderTrace(level={self.level!r}, enabled={flags})"


__all__ = ["HolderTrace"]
