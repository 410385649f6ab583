"""Storage backends.

The file and memory backends are imported eagerly; the relational ones
(``SQLBackend``, ``SQLiteBackend``, ``SQLiteSettings``) load SQLAlchemy on
first access.

Tags:
    holdfast, storage, backends, package

Doc-Types:
    api-reference
"""

from holdfast.backends.base import Enumerable, StorageBackend, is_enumerable
from holdfast.backends.buffered import BufferedFolderBackend
from holdfast.backends.folder import FolderBackend
from holdfast.backends.memory import MemoryBackend

__all__ = [
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
    if name == "SQLBackend":
        from holdfast.backends.sql import SQLBackend

        return SQLBackend
    if name in ("SQLiteBackend", "SQLiteSettings"):
        from holdfast.backends import sqlite as _sqlite

        return getattr(_sqlite, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
