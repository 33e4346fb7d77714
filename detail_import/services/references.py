from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from ..models.reference import (
    REFERENCE_FIELDS,
    ReferenceItem,
    UnresolvedReference,
    UnresolvedReferences,
    reference_field,
)
from ..models.rows import ValidatedRow

"""Reference resolution: free-text catalog names -> catalog ids.

Resolution is first-match-wins over the catalog order: exact (normalized)
name first, then substring containment in either direction. There is no
similarity ranking; catalogs are pre-sorted by a stable key so the outcome is
reproducible for a given snapshot.
"""

__all__ = [
    "ReferenceResolutionError",
    "normalize_name",
    "resolve_reference",
    "sort_catalog",
    "collect_unresolved",
    "rows_matching",
]


class ReferenceResolutionError(Exception):
    """Raised when a manual resolution names an id that is not in the catalog."""


def normalize_name(name: object) -> str:
    if name is None:
        return ""
    return str(name).strip().lower()


def resolve_reference(name: str | None, catalog: Sequence[ReferenceItem]) -> int | None:
    """Resolve a free-text name against one catalog.

    (a) first entry whose normalized name equals the query;
    (b) first entry where the query contains the entry name or the entry name
        contains the query.
    Entries with a blank name never match.
    """
    query = normalize_name(name)
    if not query:
        return None

    candidates = [(item, normalize_name(item.name)) for item in catalog]
    candidates = [(item, n) for item, n in candidates if n]

    for item, item_name in candidates:
        if item_name == query:
            return item.id
    for item, item_name in candidates:
        if item_name in query or query in item_name:
            return item.id
    return None


def sort_catalog(records: Iterable[dict[str, Any]], id_key: str = "id", name_key: str = "name") -> list[ReferenceItem]:
    """Project raw catalog records to ReferenceItems in a stable order.

    Sort key is (priority, name, id); records without a priority sort after
    those with one.
    """
    def _key(rec: dict[str, Any]) -> tuple[int, float, str, int]:
        priority = rec.get("priority")
        has_priority = 0 if priority is not None else 1
        return (has_priority, float(priority or 0), normalize_name(rec.get(name_key)), int(rec[id_key]))

    return [
        ReferenceItem(id=int(rec[id_key]), name=str(rec.get(name_key) or ""))
        for rec in sorted(records, key=_key)
    ]


def collect_unresolved(rows: Iterable[ValidatedRow]) -> UnresolvedReferences:
    """Group unmatched free-text values per reference field, counting rows.

    Values are grouped by their exact string, in first-seen order.
    """
    counts: dict[str, dict[str, int]] = {rf.field: {} for rf in REFERENCE_FIELDS}
    for row in rows:
        for rf in REFERENCE_FIELDS:
            value = getattr(row, rf.name_attr)
            if value and getattr(row, rf.id_attr) is None:
                bucket = counts[rf.field]
                bucket[value] = bucket.get(value, 0) + 1

    def _entries(field_name: str) -> list[UnresolvedReference]:
        return [
            UnresolvedReference(original_value=value, count=count, field=field_name)
            for value, count in counts[field_name].items()
        ]

    return UnresolvedReferences(
        edge_types=_entries("edge_type"),
        films=_entries("film"),
        materials=_entries("material"),
        milling_types=_entries("milling_type"),
    )


def rows_matching(rows: Sequence[ValidatedRow], field_name: str, original_value: str) -> list[int]:
    """Indexes of rows whose free text for ``field_name`` equals ``original_value``."""
    rf = reference_field(field_name)
    return [i for i, row in enumerate(rows) if getattr(row, rf.name_attr) == original_value]
