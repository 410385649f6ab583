"""Holdfast core - holders, elements, codec, cache and migration.

Architecture::

    Layer 1 -- Errors & Observability
        errors.py      HoldfastError hierarchy (DecodeError, StorageError, ...)
        logging.py     structlog configuration and context helpers
        trace.py       HolderTrace (per-event verbosity)

    Layer 2 -- Data Model
        element.py     DataElement base model + CodecOptions
        registry.py    TypeRegistry (tags, aliases, resolvers)
        holder.py      DataHolder (decoded + still-encoded elements)

    Layer 3 -- Persistence
        codec.py       HolderRecord wire format + HolderCodec
        cache.py       HolderCache (session registry, active backend)
        migration.py   migrate() + MigrationReport
        settings.py    HoldfastSettings + factories

Tags:
    holdfast, core, package

Doc-Types:
    api-reference
"""

from holdfast.core.errors import (
    ConfigError,
    DatabaseError,
    DecodeError,
    ErrorCategory,
    ErrorContext,
    HoldfastError,
    HolderDetachedError,
    MigrationError,
    StorageError,
    UnknownElementError,
    categorize_error,
)
from holdfast.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from holdfast.core.element import CodecOptions, DataElement
from holdfast.core.registry import (
    Registration,
    TypeRegistry,
    default_registry,
    qualified_name,
    register_element,
)
from holdfast.core.codec import ElementEntry, HolderCodec, HolderRecord
from holdfast.core.holder import DataHolder
from holdfast.core.trace import HolderTrace
from holdfast.core.cache import HolderCache
from holdfast.core.migration import MigrationReport, migrate
from holdfast.core.settings import (
    HoldfastSettings,
    StorageKind,
    clear_settings_cache,
    create_backend,
    create_cache,
    create_engine,
    get_settings,
)

__all__ = [
    # errors
    "HoldfastError",
    "ErrorCategory",
    "ErrorContext",
    "DecodeError",
    "UnknownElementError",
    "StorageError",
    "DatabaseError",
    "ConfigError",
    "MigrationError",
    "HolderDetachedError",
    "categorize_error",
    # logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "HolderTrace",
    # model
    "DataElement",
    "CodecOptions",
    "TypeRegistry",
    "Registration",
    "default_registry",
    "register_element",
    "qualified_name",
    "DataHolder",
    # persistence
    "ElementEntry",
    "HolderRecord",
    "HolderCodec",
    "HolderCache",
    "MigrationReport",
    "migrate",
    # settings
    "HoldfastSettings",
    "StorageKind",
    "create_engine",
    "create_backend",
    "create_cache",
    "get_settings",
    "clear_settings_cache",
]
