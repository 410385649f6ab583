"""
Data elements - the typed payloads stored inside a holder.

A ``DataElement`` is a pydantic model.  Applications subclass it once per
payload variant, register the subclass with a ``TypeRegistry`` and attach
instances to holders.  Each variant owns its codec configuration through the
``codec_options`` class attribute, so field filtering on one variant never
leaks into another.

Lifecycle hooks:

* ``on_attach(holder)`` fires once when the element is bound into a holder.
  The default records a weak back-reference available as ``element.holder``.
* ``on_load()`` fires once after the element has been decoded.
* ``before_save()`` fires immediately before the owning holder is encoded.

Examples:
    >>> class Counter(DataElement):
    ...     n: int = 0
    ...
    ...     def before_save(self) -> None:
    ...         self.n = max(self.n, 0)

    Hiding a field from the stored form:

    >>> class Session(DataElement):
    ...     codec_options = CodecOptions(exclude=frozenset({"token"}))
    ...     user: str = ""
    ...     token: str | None = None

Tags:
    holdfast, element, pydantic, serialization, hooks

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import weakref
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

if TYPE_CHECKING:
    from holdfast.core.holder import DataHolder


@dataclass(frozen=True)
class CodecOptions:
    """Per-variant encode/decode configuration.

    Attributes:
        include: Only these fields are written (``None`` → all fields)
        exclude: These fields are never written
        by_alias: Write fields under their pydantic alias
        exclude_none: Skip fields whose value is ``None``
        exclude_defaults: Skip fields still at their default value
        strict: Validate stored data in pydantic strict mode
    """

    include: frozenset[str] | None = None
    exclude: frozenset[str] | None = None
    by_alias: bool = False
    exclude_none: bool = False
    exclude_defaults: bool = False
    strict: bool | None = None

    def dump_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "by_alias": self.by_alias,
            "exclude_none": self.exclude_none,
            "exclude_defaults": self.exclude_defaults,
        }
        if self.include is not None:
            kwargs["include"] = set(self.include)
        if self.exclude is not None:
            kwargs["exclude"] = set(self.exclude)
        return kwargs


class DataElement(BaseModel):
    """Base class for every payload variant stored in a holder."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    codec_options: ClassVar[CodecOptions] = CodecOptions()

    _holder_ref: Any = PrivateAttr(default=None)

    @property
    def holder(self) -> DataHolder | None:
        """The holder this element is attached to, if it is still alive."""
        ref = self._holder_ref
        return ref() if ref is not None else None

    # -- hooks -------------------------------------------------------------

    def on_attach(self, holder: DataHolder) -> None:
        self._holder_ref = weakref.ref(holder)

    def on_load(self) -> None:
        pass

    def before_save(self) -> None:
        pass

    # -- codec -------------------------------------------------------------

    def encode(self) -> dict[str, Any]:
        """Dump this element to a JSON-compatible dict using its codec options."""
        return self.model_dump(mode="json", **self.codec_options.dump_kwargs())

    def decode(self, data: Mapping[str, Any]) -> DataElement:
        """Build a populated instance of this variant from its stored form.

        Called on a zero-value instance produced by the registry factory.
        """
        return type(self).model_validate(dict(data), strict=self.codec_options.strict)

    def __eq__(self, other: object) -> bool:
        # The holder back-reference is navigation only and takes no part in equality.
        if not isinstance(other, DataElement) or type(other) is not type(self):
            return NotImplemented
        return self.model_dump() == other.model_dump()

    __hash__ = None  # type: ignore[assignment]


__all__ = ["CodecOptions", "DataElement"]
