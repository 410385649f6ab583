"""
Shared pytest fixtures and configuration for holdfast tests.

This module provides:
- The sample element variants of tests._support.elements, registered
- An isolated TypeRegistry per test, so registrations never leak
- Ready caches over the memory and folder backends
- structlog reset between tests for ``capture_logs`` assertions

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.
"""

import sys
from pathlib import Path
from uuid import UUID

import pytest
import structlog

# Ensure holdfast package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from holdfast.backends.folder import FolderBackend
from holdfast.backends.memory import MemoryBackend
from holdfast.core.cache import HolderCache
from holdfast.core.logging import clear_context
from holdfast.core.registry import TypeRegistry
from holdfast.core.trace import HolderTrace
from tests._support.elements import Counter, Note, Profile, Stamped


# =============================================================================
# Fixed identifiers
# =============================================================================

HOLDER_X = UUID("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
HOLDER_Y = UUID("6fa459ea-ee8a-3ca4-894e-db77e160355e")
HOLDER_Z = UUID("886313e1-3b8a-5372-9b90-0c9aee199e5d")


@pytest.fixture
def holder_ids() -> tuple[UUID, UUID, UUID]:
    return HOLDER_X, HOLDER_Y, HOLDER_Z


# =============================================================================
# Registry / Cache Fixtures
# =============================================================================


@pytest.fixture
def registry() -> TypeRegistry:
    """A registry with the sample variants; Counter also answers to a legacy tag."""
    reg = TypeRegistry()
    reg.register("counter", Counter, aliases=["AnotherTestData"])
    reg.register("note", Note)
    reg.register("profile", Profile)
    reg.register("stamped", Stamped)
    return reg


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def cache(memory_backend: MemoryBackend, registry: TypeRegistry) -> HolderCache:
    c = HolderCache(memory_backend, registry=registry, trace=HolderTrace.verbose())
    c.prepare()
    return c


@pytest.fixture
def folder_cache(tmp_path: Path, registry: TypeRegistry) -> HolderCache:
    c = HolderCache(FolderBackend(tmp_path / "holders"), registry=registry)
    c.prepare()
    return c


# =============================================================================
# Logging Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging():
    """Restore structlog defaults and drop bound context after every test."""
    yield
    structlog.reset_defaults()
    clear_context()
