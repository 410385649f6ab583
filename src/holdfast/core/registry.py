"""Type registry for element variants.

Manifesto:
    Stored records name their payloads by a stable string tag.  The registry
    maps each tag to a factory producing a zero-value instance of the
    variant, plus any legacy alias tags that must still decode after a
    variant was renamed.  Encoding always uses the canonical tag, so an old
    record is migrated off its alias the next time it is saved.

Resolution order for ``resolve(tag)``:

1. canonical tags registered with ``register()`` / ``element()``
2. alias tags
3. resolver callables added with ``add_resolver()``, in order
4. import-path lookup of ``package.module.ClassName`` (a ``DataElement``
   subclass), only with ``import_fallback=True``.  Importing runs the named
   module, so enable it only for records from a trusted source.

Tags:
    holdfast, registry, serialization, aliases, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from holdfast.core.element import DataElement
from holdfast.core.errors import UnknownElementError
from holdfast.core.logging import get_logger

logger = get_logger(__name__)

ElementFactory = Callable[[], DataElement]
Resolver = Callable[[str], "ElementFactory | None"]


def qualified_name(element_type: type) -> str:
    """Default tag of an unregistered variant: ``module.QualName``."""
    return f"{element_type.__module__}.{element_type.__qualname__}"


@dataclass(frozen=True)
class Registration:
    """A resolved variant: canonical tag, factory and legacy aliases."""

    tag: str
    factory: ElementFactory
    element_type: type[DataElement]
    aliases: tuple[str, ...] = ()

    def create(self) -> DataElement:
        """Produce a zero-value instance of the variant."""
        return self.factory()


class TypeRegistry:
    """Maps element type tags to factories; safe for concurrent use."""

    def __init__(self, *, import_fallback: bool = False) -> None:
        self.import_fallback = import_fallback
        self._lock = threading.RLock()
        self._by_tag: dict[str, Registration] = {}
        self._by_alias: dict[str, str] = {}
        self._by_type: dict[type, str] = {}
        self._resolvers: list[Resolver] = []

    # -- registration ------------------------------------------------------

    def register(
        self,
        tag: str,
        factory: ElementFactory,
        aliases: Iterable[str] = (),
    ) -> Registration:
        """Register a variant under ``tag`` with optional legacy ``aliases``.

        ``factory`` is usually the ``DataElement`` subclass itself, but any
        zero-argument callable returning a fresh instance works.

        Raises:
            ValueError: If the tag or an alias is already taken
            TypeError: If the factory does not produce a ``DataElement``
        """
        element_type = factory if isinstance(factory, type) else type(factory())
        if not issubclass(element_type, DataElement):
            raise TypeError(f"Factory for '{tag}' must produce a DataElement, got {element_type.__name__}")

        aliases = tuple(aliases)
        with self._lock:
            for name in (tag, *aliases):
                if name in self._by_tag or name in self._by_alias:
                    raise ValueError(f"Element tag '{name}' is already registered")
            if len(set(aliases)) != len(aliases) or tag in aliases:
                raise ValueError(f"Duplicate aliases for element tag '{tag}'")

            registration = Registration(tag=tag, factory=factory, element_type=element_type, aliases=aliases)
            self._by_tag[tag] = registration
            for alias in aliases:
                self._by_alias[alias] = tag
            self._by_type[element_type] = tag

        logger.debug("element_registered", tag=tag, cls=element_type.__name__, aliases=list(aliases))
        return registration

    def element(
        self,
        tag: str | None = None,
        aliases: Iterable[str] = (),
    ) -> Callable[[type[DataElement]], type[DataElement]]:
        """Class decorator form of ``register``.

        Example:
            >>> @registry.element("counter", aliases=["app.models.OldCounter"])
            ... class Counter(DataElement):
            ...     n: int = 0
        """

        def decorator(cls: type[DataElement]) -> type[DataElement]:
            self.register(tag or qualified_name(cls), cls, aliases)
            return cls

        return decorator

    def unregister(self, tag: str) -> bool:
        """Remove a canonical tag and its aliases."""
        with self._lock:
            registration = self._by_tag.pop(tag, None)
            if registration is None:
                return False
            for alias in registration.aliases:
                self._by_alias.pop(alias, None)
            if self._by_type.get(registration.element_type) == tag:
                del self._by_type[registration.element_type]
            return True

    def add_resolver(self, resolver: Resolver) -> None:
        """Append a resolver consulted after canonical and alias tags."""
        with self._lock:
            self._resolvers.append(resolver)

    # -- lookup ------------------------------------------------------------

    def find(self, tag: str) -> Registration | None:
        """Resolve ``tag`` through the full chain, or ``None``."""
        with self._lock:
            registration = self._by_tag.get(tag)
            if registration is None and tag in self._by_alias:
                registration = self._by_tag[self._by_alias[tag]]
            resolvers = list(self._resolvers)
        if registration is not None:
            return registration

        for resolver in resolvers:
            factory = resolver(tag)
            if factory is not None:
                return self._adopt(factory)

        if self.import_fallback:
            element_type = _import_element_type(tag)
            if element_type is not None:
                return self._adopt(element_type)

        return None

    def resolve(self, tag: str) -> Registration:
        """Resolve ``tag`` or raise ``UnknownElementError``."""
        registration = self.find(tag)
        if registration is None:
            raise UnknownElementError(tag)
        return registration

    def registration_for(self, element_type: type[DataElement]) -> Registration:
        """The registration of a variant type, registered or not."""
        with self._lock:
            tag = self._by_type.get(element_type)
            if tag is not None:
                return self._by_tag[tag]
        return Registration(tag=qualified_name(element_type), factory=element_type, element_type=element_type)

    def tag_for(self, element_type: type[DataElement]) -> str:
        """Canonical tag used when encoding instances of ``element_type``."""
        return self.registration_for(element_type).tag

    def tags(self) -> list[str]:
        """All canonical tags, sorted."""
        with self._lock:
            return sorted(self._by_tag)

    def _adopt(self, factory: ElementFactory) -> Registration:
        # Variants found outside the registry still encode under their registered tag, if any.
        element_type = factory if isinstance(factory, type) else type(factory())
        registration = self.registration_for(element_type)
        if registration.factory is element_type and factory is not element_type:
            registration = Registration(tag=registration.tag, factory=factory, element_type=element_type)
        return registration

    def __contains__(self, tag: object) -> bool:
        with self._lock:
            return tag in self._by_tag or tag in self._by_alias

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_tag)


def _import_element_type(path: str) -> type[DataElement] | None:
    """Look up ``package.module.Outer.Inner`` as a ``DataElement`` subclass."""
    parts = path.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            target: object = importlib.import_module(module_name)
        except (ImportError, ValueError):
            continue
        for attribute in parts[split:]:
            target = getattr(target, attribute, None)
            if target is None:
                break
        if isinstance(target, type) and issubclass(target, DataElement):
            return target
        return None
    return None


default_registry = TypeRegistry()


def register_element(
    tag: str | None = None,
    aliases: Iterable[str] = (),
) -> Callable[[type[DataElement]], type[DataElement]]:
    """Register a variant in the process-wide ``default_registry``."""
    return default_registry.element(tag, aliases)


__all__ = [
    "ElementFactory",
    "Resolver",
    "Registration",
    "TypeRegistry",
    "default_registry",
    "qualified_name",
    "register_element",
]
