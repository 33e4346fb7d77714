from __future__ import annotations

from dataclasses import dataclass

"""Rectangular cell selections over a decoded sheet.

Start and end corners are stored exactly as drawn (start may exceed end);
consumers always go through ``normalized()``.
"""

__all__ = [
    "CellPosition",
    "NormalizedRange",
    "SelectionRange",
]


@dataclass(frozen=True)
class CellPosition:
    row: int
    col: int


@dataclass(frozen=True)
class NormalizedRange:
    min_row: int
    max_row: int
    min_col: int
    max_col: int

    def contains(self, row: int, col: int) -> bool:
        return self.min_row <= row <= self.max_row and self.min_col <= col <= self.max_col

    @property
    def has_extent(self) -> bool:
        """False for a single cell (a click without drag)."""
        return self.max_row > self.min_row or self.max_col > self.min_col


@dataclass(frozen=True)
class SelectionRange:
    id: str
    start_row: int
    end_row: int
    start_col: int
    end_col: int
    color: str | None = None

    def normalized(self) -> NormalizedRange:
        return NormalizedRange(
            min_row=min(self.start_row, self.end_row),
            max_row=max(self.start_row, self.end_row),
            min_col=min(self.start_col, self.end_col),
            max_col=max(self.start_col, self.end_col),
        )

    def contains(self, row: int, col: int) -> bool:
        return self.normalized().contains(row, col)

    def columns(self) -> range:
        n = self.normalized()
        return range(n.min_col, n.max_col + 1)
