"""Domain models for the detail import pipeline.

Cells and workbooks from the spreadsheet decoder, selection ranges, field
mappings, import/validated rows, catalogs and committed detail records.
"""

from .cells import CellMatrix, CellValue, Workbook, get_column_index, get_column_letter
from .detail import DetailRecord, ImportStats
from .mapping import FIELD_CONFIGS, FIELD_KEYWORDS, FieldMapping, ImportableField
from .reference import (
    REFERENCE_FIELDS,
    ReferenceData,
    ReferenceItem,
    UnresolvedReference,
    UnresolvedReferences,
)
from .rows import ErrorCode, FieldError, ImportRow, IssueType, ValidatedRow
from .selection import NormalizedRange, SelectionRange

__all__ = [
    # Spreadsheet
    "CellMatrix",
    "CellValue",
    "Workbook",
    "get_column_index",
    "get_column_letter",
    # Selection / mapping
    "SelectionRange",
    "NormalizedRange",
    "FieldMapping",
    "ImportableField",
    "FIELD_CONFIGS",
    "FIELD_KEYWORDS",
    # Rows
    "ImportRow",
    "ValidatedRow",
    "FieldError",
    "ErrorCode",
    "IssueType",
    # Catalogs
    "ReferenceItem",
    "ReferenceData",
    "REFERENCE_FIELDS",
    "UnresolvedReference",
    "UnresolvedReferences",
    # Output
    "DetailRecord",
    "ImportStats",
]
