from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Row models shared by all three import sources.

ImportRow is the uniform shape produced by spreadsheet extraction, PDF
conversion and vision-model mapping. ValidatedRow adds resolved catalog ids
and the error/warning lists; its validity is derived, never stored.
"""

__all__ = [
    "ErrorCode",
    "IssueType",
    "FieldError",
    "ImportRow",
    "ValidatedRow",
]


class IssueType(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ErrorCode(str, Enum):
    REQUIRED = "REQUIRED"
    NOT_POSITIVE = "NOT_POSITIVE"
    EXCEEDS_LIMIT = "EXCEEDS_LIMIT"
    NOT_INTEGER = "NOT_INTEGER"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    type: IssueType
    code: ErrorCode

    @staticmethod
    def error(field: str, message: str, code: ErrorCode) -> FieldError:
        return FieldError(field=field, message=message, type=IssueType.ERROR, code=code)

    @staticmethod
    def warning(field: str, message: str, code: ErrorCode) -> FieldError:
        return FieldError(field=field, message=message, type=IssueType.WARNING, code=code)


@dataclass(frozen=True)
class ImportRow:
    source_row_index: int  # строка листа / позиция в PDF / индекс элемента VLM (0-based)
    height: float | None = None
    width: float | None = None
    quantity: float | None = None
    edge_type_name: str | None = None
    film_name: str | None = None
    material_name: str | None = None
    milling_type_name: str | None = None
    note: str | None = None
    detail_name: str | None = None


@dataclass(frozen=True)
class ValidatedRow(ImportRow):
    edge_type_id: int | None = None
    film_id: int | None = None
    material_id: int | None = None
    milling_type_id: int | None = None
    errors: tuple[FieldError, ...] = ()
    warnings: tuple[FieldError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def issues_for(self, field: str) -> list[FieldError]:
        return [e for e in (*self.errors, *self.warnings) if e.field == field]
