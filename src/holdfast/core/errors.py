"""
Structured error types for holdfast.

Every failure surfaced by the persistence layer is a ``HoldfastError``
subclass carrying a category, structured context (holder id, backend,
element tag, file path) and the chained underlying exception.

Manifesto:
    - **Typed hierarchy:** Callers branch on the failure kind, not on strings
    - **NotFound is not an error:** Missing records are ``None`` results
    - **Rich context:** Errors carry metadata for structured logging
    - **Error chaining:** The original driver or OS exception is preserved

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       HoldfastError                          │
        │             (category, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │  DecodeError        StorageError      DatabaseError          │
        │  (PARSE)            (STORAGE)         (DATABASE)             │
        │       │                                                      │
        │  UnknownElementError                                         │
        │                                                              │
        │  ConfigError        MigrationError    HolderDetachedError    │
        │  (CONFIG)           (MIGRATION)       (INTERNAL)             │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = StorageError("Could not write holder file")
    >>> error.with_context(holder_id="7c1f...", path="/data/7c1f....json")
    StorageError('Could not write holder file', category=STORAGE)
    >>> error.context.path
    '/data/7c1f....json'

Tags:
    error-handling, exception-hierarchy, error-context, holdfast

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    STORAGE = "STORAGE"
    DATABASE = "DATABASE"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    MIGRATION = "MIGRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured context attached to a ``HoldfastError``.

    Attributes:
        holder_id: Id of the holder being processed
        backend: Name of the storage backend involved
        tag: Element type tag being resolved
        path: File path that was being accessed
        metadata: Additional key-value pairs
    """

    holder_id: str | None = None
    backend: str | None = None
    tag: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["holder_id", "backend", "tag", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class HoldfastError(Exception):
    """
    Base exception for all holdfast errors.

    Subclasses set ``default_category``; instances carry an ``ErrorContext``
    and optionally the exception that caused them, which is also linked as
    ``__cause__`` so tracebacks show the full chain.

    Examples:
        >>> try:
        ...     raise PermissionError("read-only file system")
        ... except OSError as e:
        ...     error = StorageError("Could not save holder", cause=e)
        >>> error.cause
        PermissionError('read-only file system')
        >>> error.to_dict()["category"]
        'STORAGE'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> HoldfastError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DecodeError("Bad record").with_context(
                holder_id=str(holder_id),
                backend="FolderBackend",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DECODING
# =============================================================================


class DecodeError(HoldfastError):
    """A record's bytes could not be parsed, or its shape is invalid."""

    default_category = ErrorCategory.PARSE


class UnknownElementError(DecodeError):
    """An element type tag did not resolve to any known variant."""

    def __init__(self, tag: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Unable to resolve element type tag '{tag}'", **kwargs)
        self.tag = tag
        self.context.tag = tag


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(HoldfastError):
    """Filesystem-level fault (permission, disk full, missing directory)."""

    default_category = ErrorCategory.STORAGE


class DatabaseError(HoldfastError):
    """Database driver fault (connection loss, schema mismatch, ...)."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# CONFIGURATION / LIFECYCLE
# =============================================================================


class ConfigError(HoldfastError):
    """Invalid backend or session configuration, raised before any I/O."""

    default_category = ErrorCategory.CONFIG


class MigrationError(HoldfastError):
    """Migration could not start (for example, the source is not enumerable)."""

    default_category = ErrorCategory.MIGRATION


class HolderDetachedError(HoldfastError):
    """``save()`` or ``delete()`` was called on a holder without a cache."""

    pass


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, HoldfastError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "HoldfastError",
    "DecodeError",
    "UnknownElementError",
    "StorageError",
    "DatabaseError",
    "ConfigError",
    "MigrationError",
    "HolderDetachedError",
    "categorize_error",
]
