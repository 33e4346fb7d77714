from __future__ import annotations

from dataclasses import dataclass, field

"""Catalog (reference) models: edge types, films, materials, milling types.

Catalogs are loaded once per wizard session and treated as read-only
snapshots. ``REFERENCE_FIELDS`` ties each reference field to the row
attributes that carry its free text and its resolved id.
"""

__all__ = [
    "ReferenceItem",
    "ReferenceData",
    "ReferenceField",
    "REFERENCE_FIELDS",
    "reference_field",
    "UnresolvedReference",
    "UnresolvedReferences",
]


@dataclass(frozen=True)
class ReferenceItem:
    id: int
    name: str


@dataclass(frozen=True)
class ReferenceField:
    field: str  # edge_type | film | material | milling_type
    name_attr: str  # ImportRow attribute with the free text
    id_attr: str  # ValidatedRow attribute with the resolved id
    catalog_attr: str  # ReferenceData attribute
    label: str  # for messages


REFERENCE_FIELDS: tuple[ReferenceField, ...] = (
    ReferenceField("edge_type", "edge_type_name", "edge_type_id", "edge_types", "edge type"),
    ReferenceField("film", "film_name", "film_id", "films", "film"),
    ReferenceField("material", "material_name", "material_id", "materials", "material"),
    ReferenceField("milling_type", "milling_type_name", "milling_type_id", "milling_types", "milling type"),
)

_BY_NAME = {rf.field: rf for rf in REFERENCE_FIELDS}
_BY_ATTR = {attr: rf for rf in REFERENCE_FIELDS for attr in (rf.name_attr, rf.id_attr)}


def reference_field(name: str) -> ReferenceField:
    """Look up a reference field by field name (``edge_type``) or row attribute."""
    rf = _BY_NAME.get(name) or _BY_ATTR.get(name)
    if rf is None:
        raise KeyError(f"unknown reference field: {name}")
    return rf


@dataclass(frozen=True)
class ReferenceData:
    edge_types: tuple[ReferenceItem, ...] = ()
    films: tuple[ReferenceItem, ...] = ()
    materials: tuple[ReferenceItem, ...] = ()
    milling_types: tuple[ReferenceItem, ...] = ()

    @staticmethod
    def from_lists(
        edge_types: list[ReferenceItem] | None = None,
        films: list[ReferenceItem] | None = None,
        materials: list[ReferenceItem] | None = None,
        milling_types: list[ReferenceItem] | None = None,
    ) -> ReferenceData:
        return ReferenceData(
            edge_types=tuple(edge_types or ()),
            films=tuple(films or ()),
            materials=tuple(materials or ()),
            milling_types=tuple(milling_types or ()),
        )

    def catalog(self, field_name: str) -> tuple[ReferenceItem, ...]:
        return getattr(self, reference_field(field_name).catalog_attr)

    def contains(self, field_name: str, item_id: int | None) -> bool:
        if item_id is None:
            return False
        return any(item.id == item_id for item in self.catalog(field_name))

    @property
    def is_empty(self) -> bool:
        return not (self.edge_types or self.films or self.materials or self.milling_types)


@dataclass(frozen=True)
class UnresolvedReference:
    """A free-text catalog value that matched nothing, with its row count."""
    original_value: str
    count: int
    field: str


@dataclass(frozen=True)
class UnresolvedReferences:
    edge_types: list[UnresolvedReference] = field(default_factory=list)
    films: list[UnresolvedReference] = field(default_factory=list)
    materials: list[UnresolvedReference] = field(default_factory=list)
    milling_types: list[UnresolvedReference] = field(default_factory=list)

    def for_field(self, field_name: str) -> list[UnresolvedReference]:
        return getattr(self, reference_field(field_name).catalog_attr)

    @property
    def total(self) -> int:
        return len(self.edge_types) + len(self.films) + len(self.materials) + len(self.milling_types)
