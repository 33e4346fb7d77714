from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from ..models.cells import CellMatrix, get_column_index, get_column_letter, parse_number, parse_string
from ..models.mapping import (
    FIELD_KEYWORDS,
    REQUIRED_FIELDS,
    FieldMapping,
    ImportableField,
)
from ..models.rows import ImportRow
from ..models.selection import SelectionRange

"""Field mapping engine: spreadsheet columns -> canonical detail fields.

Auto-detection is advisory. It matches header text against per-field synonym
lists first, then assigns the numeric triplet (height, width, quantity) to the
leftmost unassigned columns whose samples are numeric. Text fields without a
header match stay unassigned.
"""

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 3
MIN_CONTAINS_KEYWORD = 3  # короткие синонимы ("h", "шт") только по точному совпадению

_NUMERIC_TRIPLET = (ImportableField.HEIGHT, ImportableField.WIDTH, ImportableField.QUANTITY)


@dataclass(frozen=True)
class ColumnInfo:
    letter: str
    index: int
    header: str
    samples: tuple[str, ...]


def _header_text(matrix: CellMatrix, row: int, col: int) -> str:
    text = parse_string(matrix.cell(row, col))
    return text.lower().strip() if text else ""


def _sample_values(matrix: CellMatrix, first_row: int, last_row: int, col: int) -> list[object]:
    end = min(first_row + SAMPLE_ROWS, last_row + 1, matrix.row_count)
    return [matrix.cell(r, col) for r in range(first_row, end) if matrix.cell(r, col) is not None]


def available_columns(
    matrix: CellMatrix, ranges: Sequence[SelectionRange], has_header_row: bool
) -> list[ColumnInfo]:
    """Distinct columns covered by the ranges, left to right, with header and samples.

    When a column appears in several ranges, the first range (creation order)
    provides its header and samples.
    """
    seen: set[int] = set()
    columns: list[ColumnInfo] = []
    for rng in ranges:
        n = rng.normalized()
        data_start = n.min_row + 1 if has_header_row else n.min_row
        for col in range(n.min_col, n.max_col + 1):
            if col in seen:
                continue
            seen.add(col)
            letter = get_column_letter(col)
            header = parse_string(matrix.cell(n.min_row, col)) if has_header_row else None
            samples = tuple(
                s for s in (parse_string(v) for v in _sample_values(matrix, data_start, n.max_row, col)) if s
            )
            columns.append(ColumnInfo(letter=letter, index=col, header=header or letter, samples=samples))
    return sorted(columns, key=lambda c: c.index)


def _header_matches(header: str, keywords: Iterable[str], exact: bool) -> bool:
    for kw in keywords:
        word = kw.lower().strip()
        if not word:
            continue
        if header == word:
            return True
        if not exact and len(word) >= MIN_CONTAINS_KEYWORD and word in header:
            return True
    return False


def _is_numeric_column(samples: list[object]) -> bool:
    return bool(samples) and all(parse_number(v) is not None for v in samples)


def auto_detect_mapping(
    matrix: CellMatrix,
    selection: SelectionRange,
    has_header_row: bool,
    keywords: Mapping[ImportableField, Sequence[str]] | None = None,
) -> FieldMapping:
    """Propose a FieldMapping for one range.

    1. Header match (only with a header row): for each field in canonical
       order, the first unassigned column whose header equals a synonym;
       failing that, whose header contains a synonym of 3+ characters.
    2. Numeric fallback: unmatched height/width/quantity, in that order, take
       the leftmost unassigned columns whose sampled values all parse as numbers.
    """
    kw = keywords or FIELD_KEYWORDS
    n = selection.normalized()
    remaining = list(range(n.min_col, n.max_col + 1))
    assigned: dict[ImportableField, int] = {}

    if has_header_row:
        headers = {col: _header_text(matrix, n.min_row, col) for col in remaining}
        for fld in ImportableField:
            words = kw.get(fld, ())
            match = next((c for c in remaining if headers[c] and _header_matches(headers[c], words, True)), None)
            if match is None:
                match = next(
                    (c for c in remaining if headers[c] and _header_matches(headers[c], words, False)), None
                )
            if match is not None:
                assigned[fld] = match
                remaining.remove(match)

    data_start = n.min_row + 1 if has_header_row else n.min_row
    numeric_cols = [c for c in remaining if _is_numeric_column(_sample_values(matrix, data_start, n.max_row, c))]
    for fld in _NUMERIC_TRIPLET:
        if fld in assigned or not numeric_cols:
            continue
        col = numeric_cols.pop(0)
        assigned[fld] = col
        remaining.remove(col)

    mapping = FieldMapping.empty()
    for fld, col in assigned.items():
        mapping = mapping.with_field(fld, get_column_letter(col))
    logger.debug(f"auto-detected mapping: {mapping.to_dict()}")
    return mapping


def _column_in_ranges(letter: str, ranges: Sequence[SelectionRange]) -> bool:
    try:
        col = get_column_index(letter)
    except ValueError:
        return False
    return any(col in r.columns() for r in ranges)


def effective_mapping(mapping: FieldMapping, ranges: Sequence[SelectionRange]) -> FieldMapping:
    """Mapping with every column outside all committed ranges reset to None.

    Applied at read time so that ranges may be edited after mapping.
    """
    result = mapping
    for fld, letter in mapping.assigned().items():
        if not _column_in_ranges(letter, ranges):
            result = result.with_field(fld, None)
    return result


def missing_required_fields(mapping: FieldMapping, ranges: Sequence[SelectionRange]) -> list[ImportableField]:
    eff = effective_mapping(mapping, ranges)
    return [f for f in REQUIRED_FIELDS if eff.get(f) is None]


def extract_rows(
    matrix: CellMatrix,
    ranges: Sequence[SelectionRange],
    mapping: FieldMapping,
    has_header_row: bool,
) -> list[ImportRow]:
    """One pass over every range, producing ImportRows.

    Each range skips its own header row when ``has_header_row``. A mapped
    column outside a range reads as empty for that range. Rows without any of
    height/width/quantity are skipped.
    """
    eff = effective_mapping(mapping, ranges)
    letters = eff.assigned()
    rows: list[ImportRow] = []

    for rng in ranges:
        n = rng.normalized()
        data_start = n.min_row + 1 if has_header_row else n.min_row
        col_of = {
            fld: get_column_index(letter)
            for fld, letter in letters.items()
            if n.min_col <= get_column_index(letter) <= n.max_col
        }

        def _value(r: int, fld: ImportableField) -> object:
            col = col_of.get(fld)
            return matrix.cell(r, col) if col is not None else None

        for r in range(data_start, n.max_row + 1):
            if r >= matrix.row_count:
                break
            row = ImportRow(
                source_row_index=r,
                height=parse_number(_value(r, ImportableField.HEIGHT)),
                width=parse_number(_value(r, ImportableField.WIDTH)),
                quantity=parse_number(_value(r, ImportableField.QUANTITY)),
                edge_type_name=parse_string(_value(r, ImportableField.EDGE_TYPE)),
                film_name=parse_string(_value(r, ImportableField.FILM)),
                material_name=parse_string(_value(r, ImportableField.MATERIAL)),
                milling_type_name=parse_string(_value(r, ImportableField.MILLING_TYPE)),
                note=parse_string(_value(r, ImportableField.NOTE)),
                detail_name=parse_string(_value(r, ImportableField.DETAIL_NAME)),
            )
            if row.height is None and row.width is None and row.quantity is None:
                continue
            rows.append(row)

    logger.debug(f"extracted {len(rows)} rows from {len(ranges)} range(s)")
    return rows
