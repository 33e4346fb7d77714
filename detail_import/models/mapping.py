from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Canonical detail fields and the column mapping that feeds them.

Every import source must end up populating the same fixed set of fields.
For spreadsheets the operator (or auto-detection) maps each field to a column
letter; PDF and image sources produce rows with the fields already set.
"""

__all__ = [
    "ImportableField",
    "FieldKind",
    "FieldConfig",
    "FIELD_CONFIGS",
    "FIELD_KEYWORDS",
    "REQUIRED_FIELDS",
    "FieldMapping",
]


class ImportableField(str, Enum):
    """Canonical field names, in canonical order."""
    HEIGHT = "height"
    WIDTH = "width"
    QUANTITY = "quantity"
    EDGE_TYPE = "edge_type"
    FILM = "film"
    MATERIAL = "material"
    MILLING_TYPE = "milling_type"
    NOTE = "note"
    DETAIL_NAME = "detail_name"


class FieldKind(Enum):
    NUMBER = "number"
    TEXT = "text"
    REFERENCE = "reference"


@dataclass(frozen=True)
class FieldConfig:
    field: ImportableField
    label: str
    required: bool
    kind: FieldKind
    reference_resource: str | None = None  # имя справочника для REFERENCE полей


FIELD_CONFIGS: tuple[FieldConfig, ...] = (
    FieldConfig(ImportableField.HEIGHT, "Высота (мм)", True, FieldKind.NUMBER),
    FieldConfig(ImportableField.WIDTH, "Ширина (мм)", True, FieldKind.NUMBER),
    FieldConfig(ImportableField.QUANTITY, "Количество", True, FieldKind.NUMBER),
    FieldConfig(ImportableField.EDGE_TYPE, "Обкат", False, FieldKind.REFERENCE, "edge_types"),
    FieldConfig(ImportableField.FILM, "Плёнка", False, FieldKind.REFERENCE, "films"),
    FieldConfig(ImportableField.MATERIAL, "Материал", False, FieldKind.REFERENCE, "materials"),
    FieldConfig(ImportableField.MILLING_TYPE, "Фрезеровка", False, FieldKind.REFERENCE, "milling_types"),
    FieldConfig(ImportableField.NOTE, "Примечание", False, FieldKind.TEXT),
    FieldConfig(ImportableField.DETAIL_NAME, "Название детали", False, FieldKind.TEXT),
)

REQUIRED_FIELDS: tuple[ImportableField, ...] = tuple(c.field for c in FIELD_CONFIGS if c.required)

# Header synonyms per field, lowercase. Configurable via field_keywords in import.yml.
FIELD_KEYWORDS: dict[ImportableField, tuple[str, ...]] = {
    ImportableField.HEIGHT: ("высота", "height", "h", "выс", "длина", "длин"),
    ImportableField.WIDTH: ("ширина", "width", "w", "шир"),
    ImportableField.QUANTITY: ("количество", "quantity", "qty", "кол-во", "кол", "шт"),
    ImportableField.EDGE_TYPE: ("обкатка", "обкат", "кромка", "edge", "обработка"),
    ImportableField.FILM: ("плёнка", "пленка", "film", "плен"),
    ImportableField.MATERIAL: ("материал", "material", "мат"),
    ImportableField.MILLING_TYPE: ("фрезеровка", "фрезировка", "фрез", "milling", "тип фрез"),
    ImportableField.NOTE: ("примечание", "note", "прим", "комментарий", "коммент"),
    ImportableField.DETAIL_NAME: ("название", "наименование", "name", "наим", "деталь"),
}


def _empty_columns() -> dict[ImportableField, str | None]:
    return {f: None for f in ImportableField}


@dataclass(frozen=True)
class FieldMapping:
    """Canonical field -> column letter (or None when unassigned).

    Immutable; ``with_field`` returns a copy with exactly one entry replaced.
    Columns are not checked against the selected ranges here, see
    ``services.mapping.effective_mapping``.
    """
    columns: dict[ImportableField, str | None] = field(default_factory=_empty_columns)

    @staticmethod
    def empty() -> FieldMapping:
        return FieldMapping()

    @staticmethod
    def from_dict(data: dict[str, str | None]) -> FieldMapping:
        columns = _empty_columns()
        for key, value in data.items():
            columns[ImportableField(key)] = value.strip().upper() if value else None
        return FieldMapping(columns=columns)

    def get(self, field_name: ImportableField | str) -> str | None:
        return self.columns.get(ImportableField(field_name))

    def with_field(self, field_name: ImportableField | str, column: str | None) -> FieldMapping:
        columns = dict(self.columns)
        columns[ImportableField(field_name)] = column.strip().upper() if column else None
        return FieldMapping(columns=columns)

    def assigned(self) -> dict[ImportableField, str]:
        return {f: c for f, c in self.columns.items() if c is not None}

    def to_dict(self) -> dict[str, str | None]:
        return {f.value: self.columns.get(f) for f in ImportableField}

    def __hash__(self) -> int:
        return hash(tuple(self.columns.get(f) for f in ImportableField))
