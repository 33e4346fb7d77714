from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass, field
from datetime import date, datetime

"""Cell value model for decoded spreadsheets.

A decoded sheet is a rectangular grid of loosely typed cells. Everything
downstream (mapping, extraction, validation) reads cells through
``parse_number`` / ``parse_string`` which never raise: any shape that cannot be
converted yields ``None``.
"""

__all__ = [
    "CellValue",
    "CellMatrix",
    "Workbook",
    "parse_number",
    "parse_string",
    "get_column_letter",
    "get_column_index",
]

CellValue = int | float | str | bool | datetime | date | None

# Пробелы внутри числа ("1 200", "1\xa0200") и запятая как десятичный разделитель
_NUMBER_SPACES = re.compile(r"\s+")
_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def get_column_letter(index: int) -> str:
    """Zero-based column index -> spreadsheet letter (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0: {index}")
    letter = ""
    temp = index
    while temp >= 0:
        letter = chr(temp % 26 + 65) + letter
        temp = temp // 26 - 1
    return letter


def get_column_index(letter: str) -> int:
    """Spreadsheet letter -> zero-based column index (A -> 0, AA -> 26)."""
    text = letter.strip().upper()
    if not text or not text.isalpha() or not text.isascii():
        raise ValueError(f"invalid column letter: {letter!r}")
    index = 0
    for ch in text:
        index = index * 26 + (ord(ch) - 64)
    return index - 1


def parse_number(value: object) -> float | None:
    """Convert a cell value to a float, or None when it is not numeric.

    bool and date/datetime cells are never numbers. NaN and infinities are
    treated as empty.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (datetime, date)):
        return None
    if isinstance(value, numbers.Real):
        result = float(value)
        return result if math.isfinite(result) else None
    if isinstance(value, str):
        text = _NUMBER_SPACES.sub("", value).replace(",", ".")
        if not text or not _NUMBER_PATTERN.match(text):
            return None
        result = float(text)
        return result if math.isfinite(result) else None
    return None


def parse_string(value: object) -> str | None:
    """Convert a cell value to stripped text, or None when empty."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, numbers.Real):
        number = float(value)
        if not math.isfinite(number):
            return None
        if number.is_integer():
            return str(int(number))
        return str(number)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return None


@dataclass(frozen=True)
class CellMatrix:
    """Immutable decoded sheet.

    ``rows`` is rectangular: every row has exactly ``col_count`` cells.
    """
    name: str
    rows: tuple[tuple[CellValue, ...], ...]
    row_count: int
    col_count: int

    @staticmethod
    def from_rows(name: str, rows: list[list[CellValue]]) -> CellMatrix:
        col_count = max((len(r) for r in rows), default=0)
        padded = tuple(
            tuple(r) + (None,) * (col_count - len(r))
            for r in rows
        )
        return CellMatrix(name=name, rows=padded, row_count=len(padded), col_count=col_count)

    @property
    def headers(self) -> list[str]:
        return [get_column_letter(c) for c in range(self.col_count)]

    def cell(self, row: int, col: int) -> CellValue:
        if row < 0 or col < 0 or row >= self.row_count or col >= self.col_count:
            return None
        return self.rows[row][col]


@dataclass(frozen=True)
class Workbook:
    """All sheets of one decoded spreadsheet, in workbook order."""
    file_name: str
    sheet_names: tuple[str, ...]
    sheets: dict[str, CellMatrix] = field(default_factory=dict)

    def sheet(self, name: str) -> CellMatrix:
        if name not in self.sheets:
            raise KeyError(f"sheet not found: {name}")
        return self.sheets[name]

    @property
    def first_sheet(self) -> CellMatrix | None:
        if not self.sheet_names:
            return None
        return self.sheets[self.sheet_names[0]]
