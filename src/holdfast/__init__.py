"""Holdfast - pluggable persistence for typed data elements.

Holders group typed elements under one UUID; a ``HolderCache`` loads and
saves them through an interchangeable storage backend (JSON folder,
multi-copy JSON folder, SQL table, SQLite file, memory) and can migrate
the whole data set from one backend to another.

Examples:
    >>> from holdfast import DataElement, FolderBackend, HolderCache, register_element
    >>> @register_element("counter")
    ... class Counter(DataElement):
    ...     n: int = 0
    >>> cache = HolderCache(FolderBackend("data"))
    >>> cache.prepare()
    >>> holder = cache.get_or_create("0b0f5c47-8f3a-4d8e-9a51-0c5e0e2b9d11")
    >>> holder.get_or_create(Counter).n = 69
    >>> holder.save()

Tags:
    holdfast, persistence, storage, package

Doc-Types:
    api-reference
"""

from holdfast.backends import (
    BufferedFolderBackend,
    Enumerable,
    FolderBackend,
    MemoryBackend,
    StorageBackend,
    is_enumerable,
)
from holdfast.core import *  # noqa: F403
from holdfast.core import __all__ as _core_all

__version__ = "0.1.0"

__all__ = [
    *_core_all,
    "StorageBackend",
    "Enumerable",
    "is_enumerable",
    "FolderBackend",
    "BufferedFolderBackend",
    "MemoryBackend",
    "SQLBackend",
    "SQLiteBackend",
    "SQLiteSettings",
]


def __getattr__(name):
    """Lazy import for the SQLAlchemy-backed backends."""
    if name in ("SQLBackend", "SQLiteBackend", "SQLiteSettings"):
        import holdfast.backends as _backends

        return getattr(_backends, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
