"""DataHolder - the unit of storage.

A holder is identified by an immutable UUID and owns at most one element
per variant.  Elements that arrived encoded (lazy decode) stay in a separate
map until a caller asks for their variant; the first request decodes,
attaches and memoises the element, later requests return the same instance.

Tags:
    holdfast, holder, elements, lazy-decode

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar, overload
from uuid import UUID

from holdfast.core.codec import HolderCodec
from holdfast.core.element import DataElement
from holdfast.core.errors import HolderDetachedError, UnknownElementError
from holdfast.core.registry import Registration, TypeRegistry

if TYPE_CHECKING:
    from holdfast.core.cache import HolderCache

E = TypeVar("E", bound=DataElement)

ElementKind = type[DataElement] | str


class DataHolder:
    """A set of typed elements stored together under one id."""

    def __init__(
        self,
        holder_id: UUID | str,
        cache: HolderCache | None = None,
        *,
        codec: HolderCodec | None = None,
    ) -> None:
        self._id = holder_id if isinstance(holder_id, UUID) else UUID(str(holder_id))
        self._cache = cache
        if codec is None:
            codec = cache.codec if cache is not None else HolderCodec()
        self._codec = codec
        self._lock = threading.RLock()
        self._decoded: dict[str, DataElement] = {}
        self._encoded: dict[str, dict[str, Any]] = {}

    @property
    def id(self) -> UUID:
        return self._id

    @property
    def cache(self) -> HolderCache | None:
        return self._cache

    @property
    def registry(self) -> TypeRegistry:
        return self._codec.registry

    # -- element access ----------------------------------------------------

    @overload
    def get(self, kind: type[E]) -> E | None: ...

    @overload
    def get(self, kind: str) -> DataElement | None: ...

    def get(self, kind: ElementKind) -> DataElement | None:
        """Return the element of ``kind``, decoding it on first access.

        ``kind`` is a ``DataElement`` subclass or a type tag (canonical or
        alias).

        Raises:
            UnknownElementError: If ``kind`` is a tag of a still-encoded
                element that no longer resolves to any variant
            DecodeError: If the stored data does not fit the variant
        """
        registration = self._registration(kind, required=False)
        with self._lock:
            if registration is None:
                if kind in self._encoded:
                    raise UnknownElementError(str(kind)).with_context(holder_id=str(self._id))
                return self._decoded.get(str(kind))

            element = self._decoded.get(registration.tag)
            if element is not None:
                return element

            for candidate in (registration.tag, *registration.aliases):
                if candidate in self._encoded:
                    tag, element = self._codec.decode_element(candidate, self._encoded[candidate], self)
                    self._discard_encoded(registration)
                    self._decoded[tag] = element
                    return element
        return None

    @overload
    def get_or_create(self, kind: type[E]) -> E: ...

    @overload
    def get_or_create(self, kind: str) -> DataElement: ...

    def get_or_create(self, kind: ElementKind) -> DataElement:
        """Return the element of ``kind``, creating a zero-value one if absent.

        A created element is attached (``on_attach``) but not loaded, and
        nothing is persisted until the holder is saved.
        """
        registration = self._registration(kind, required=True)
        with self._lock:
            element = self.get(registration.element_type)
            if element is None:
                element = registration.create()
                element.on_attach(self)
                self._decoded[registration.tag] = element
            return element

    def add_or_replace(self, element: DataElement) -> None:
        """Attach ``element``, replacing any element of the same variant."""
        registration = self.registry.registration_for(type(element))
        with self._lock:
            self._discard_encoded(registration)
            self._decoded[registration.tag] = element
        element.on_attach(self)

    def remove(self, kind: ElementKind) -> bool:
        """Detach the element of ``kind``; ``True`` if anything was removed."""
        registration = self._registration(kind, required=False)
        with self._lock:
            if registration is None:
                removed = self._decoded.pop(str(kind), None) is not None
                return self._encoded.pop(str(kind), None) is not None or removed
            removed = self._decoded.pop(registration.tag, None) is not None
            return self._discard_encoded(registration) or removed

    @property
    def elements(self) -> Mapping[str, DataElement]:
        """Read-only snapshot of the decoded elements keyed by canonical tag."""
        with self._lock:
            return MappingProxyType(dict(self._decoded))

    @property
    def encoded_tags(self) -> frozenset[str]:
        """Tags of elements that are still in their stored form."""
        with self._lock:
            return frozenset(self._encoded)

    @property
    def tags(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._decoded) | frozenset(self._encoded)

    def __contains__(self, kind: object) -> bool:
        if not isinstance(kind, str) and not (isinstance(kind, type) and issubclass(kind, DataElement)):
            return False
        registration = self._registration(kind, required=False)  # type: ignore[arg-type]
        names = (str(kind),) if registration is None else (registration.tag, *registration.aliases)
        with self._lock:
            return any(name in self._decoded or name in self._encoded for name in names)

    # -- persistence -------------------------------------------------------

    def save(self) -> None:
        """Save through the owning cache."""
        self._require_cache().save(self)

    def delete(self) -> bool:
        """Unload and delete through the owning cache."""
        return self._require_cache().delete(self._id)

    # -- codec hooks -------------------------------------------------------

    def _snapshot(self) -> tuple[dict[str, DataElement], dict[str, dict[str, Any]]]:
        with self._lock:
            return dict(self._decoded), dict(self._encoded)

    def _stash(self, tag: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._encoded[tag] = data

    def _install(self, tag: str, element: DataElement) -> None:
        with self._lock:
            self._encoded.pop(tag, None)
            self._decoded[tag] = element

    def _bind(self, cache: HolderCache) -> None:
        # Holders built outside a cache adopt the first cache they join, and its registry tags.
        with self._lock:
            if self._cache is not None:
                return
            self._cache = cache
            if self._codec is not cache.codec:
                self._codec = cache.codec
                self._decoded = {cache.codec.element_tag(element): element for element in self._decoded.values()}

    # -- internals ---------------------------------------------------------

    def _registration(self, kind: ElementKind, *, required: bool) -> Registration | None:
        if isinstance(kind, str):
            return self.registry.resolve(kind) if required else self.registry.find(kind)
        if isinstance(kind, type) and issubclass(kind, DataElement):
            return self.registry.registration_for(kind)
        raise TypeError(f"Element kind must be a DataElement subclass or a tag, got {kind!r}")

    def _discard_encoded(self, registration: Registration) -> bool:
        removed = False
        for candidate in (registration.tag, *registration.aliases):
            removed = self._encoded.pop(candidate, None) is not None or removed
        return removed

    def _require_cache(self) -> HolderCache:
        if self._cache is None:
            raise HolderDetachedError(f"DataHolder {self._id} is not attached to a HolderCache").with_context(
                holder_id=str(self._id)
            )
        return self._cache

    def __repr__(self) -> str:
        with self._lock:
            return f"DataHolder(id={self._id}, elements={sorted(self._decoded)}, encoded={sorted(self._encoded)})"


__all__ = ["DataHolder"]
