"""
Serialization codec - holders to wire records and back.

Manifesto:
    One record per holder, one entry per payload variant.  The record shape
    is backend-agnostic; every backend stores the same JSON text:

    ::

        { "uuid": "<RFC4122 string>",
          "dataMap": [ { "class": "<type tag>", "data": { ... } }, ... ] }

    Decoding resolves each ``class`` tag through the ``TypeRegistry``
    (canonical, alias, resolver chain, opt-in import path).  An
    unresolvable tag is a hard ``UnknownElementError`` for that record:
    payloads are never dropped silently.

Architecture:
    ::

        DataHolder ──encode()──▶ HolderRecord ──to_json()──▶ str
            ▲                        │                         │
            └──────decode()──────────┘◀──────from_json()───────┘

Features:
    - **HolderRecord / ElementEntry:** pydantic models of the wire format
    - **Canonical re-emit:** decoded elements always encode under their
      canonical tag, so alias-tagged records migrate on their next save
    - **Untouched passthrough:** still-encoded entries are re-emitted
      unchanged, no decode/encode round trip
    - **Lazy mode:** ``decode(..., lazy=True)`` defers element resolution
      until a caller asks for that variant

Tags:
    holdfast, codec, serialization, json, pydantic, aliases

Doc-Types:
    - API Reference
    - Wire Format Reference
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from holdfast.core.element import DataElement
from holdfast.core.errors import DecodeError
from holdfast.core.registry import TypeRegistry, default_registry

if TYPE_CHECKING:
    from holdfast.core.cache import HolderCache
    from holdfast.core.holder import DataHolder


class ElementEntry(BaseModel):
    """One ``{"class": tag, "data": {...}}`` entry of a record's ``dataMap``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tag: str = Field(alias="class")
    data: dict[str, Any]


class HolderRecord(BaseModel):
    """The durable form of a holder."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: UUID
    data_map: list[ElementEntry] = Field(default_factory=list, alias="dataMap")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: str | bytes) -> HolderRecord:
        """Parse and validate a stored record.

        Raises:
            DecodeError: If the text is not JSON or does not have record shape
        """
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise DecodeError(f"Malformed holder record: {e.error_count()} validation error(s)", cause=e) from e

    def tags(self) -> list[str]:
        return [entry.tag for entry in self.data_map]


class HolderCodec:
    """Encodes ``DataHolder`` instances to ``HolderRecord`` and back."""

    def __init__(self, registry: TypeRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry

    def element_tag(self, element: DataElement | type[DataElement]) -> str:
        """Canonical tag a variant is encoded under."""
        element_type = element if isinstance(element, type) else type(element)
        return self.registry.tag_for(element_type)

    # -- encode ------------------------------------------------------------

    def encode(self, holder: DataHolder) -> HolderRecord:
        decoded, encoded = holder._snapshot()

        entries: list[ElementEntry] = []
        claimed: set[str] = set()
        for key, element in decoded.items():
            registration = self.registry.registration_for(type(element))
            entries.append(ElementEntry(tag=registration.tag, data=element.encode()))
            claimed.update((key, registration.tag, *registration.aliases))

        for tag, data in encoded.items():
            if tag not in claimed:
                entries.append(ElementEntry(tag=tag, data=data))

        return HolderRecord(uuid=holder.id, data_map=entries)

    def dumps(self, holder: DataHolder) -> str:
        return self.encode(holder).to_json()

    # -- decode ------------------------------------------------------------

    def decode(
        self,
        record: HolderRecord | Mapping[str, Any],
        cache: HolderCache | None = None,
        *,
        lazy: bool = False,
    ) -> DataHolder:
        """Build a holder from a record.

        In eager mode every entry is resolved and decoded immediately and an
        unresolvable tag raises ``UnknownElementError``.  In lazy mode the
        entries are kept encoded until requested through ``DataHolder.get``.
        """
        from holdfast.core.holder import DataHolder

        if not isinstance(record, HolderRecord):
            try:
                record = HolderRecord.model_validate(record)
            except ValidationError as e:
                raise DecodeError("Malformed holder record", cause=e) from e

        holder = DataHolder(record.uuid, cache, codec=self)
        for entry in record.data_map:
            if lazy:
                holder._stash(entry.tag, entry.data)
            else:
                try:
                    tag, element = self.decode_element(entry.tag, entry.data, holder)
                except DecodeError as e:
                    raise e.with_context(holder_id=str(record.uuid))
                holder._install(tag, element)
        return holder

    def loads(self, text: str | bytes, cache: HolderCache | None = None, *, lazy: bool = False) -> DataHolder:
        return self.decode(HolderRecord.from_json(text), cache, lazy=lazy)

    def decode_element(
        self,
        tag: str,
        data: Mapping[str, Any],
        holder: DataHolder,
    ) -> tuple[str, DataElement]:
        """Resolve ``tag``, decode ``data`` into a new element and bind it to ``holder``.

        Returns the canonical tag together with the element; ``on_attach``
        and then ``on_load`` have fired by the time this returns.
        """
        registration = self.registry.resolve(tag)
        prototype = registration.create()
        try:
            element = prototype.decode(data)
        except ValidationError as e:
            raise DecodeError(f"Element data for '{tag}' does not match its variant", cause=e).with_context(
                tag=tag
            ) from e

        element.on_attach(holder)
        element.on_load()
        return registration.tag, element


__all__ = [
    "ElementEntry",
    "HolderRecord",
    "HolderCodec",
]
