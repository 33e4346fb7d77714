from __future__ import annotations

import re

from ..models.cells import get_column_index
from ..models.selection import CellPosition, SelectionRange

"""Selection range model for the spreadsheet grid.

Tracks the in-progress drag and the committed ranges. A drag that ends on its
starting cell is discarded; every other drag becomes exactly one committed
range with a fresh id and the next palette color.
"""

__all__ = [
    "RANGE_COLORS",
    "RangeSelection",
    "parse_range_reference",
]

RANGE_COLORS: tuple[str, ...] = (
    "rgba(24, 144, 255, 0.2)",  # blue
    "rgba(82, 196, 26, 0.2)",  # green
    "rgba(250, 173, 20, 0.2)",  # yellow
    "rgba(245, 34, 45, 0.2)",  # red
    "rgba(114, 46, 209, 0.2)",  # purple
)

_A1_REF = re.compile(r"^\s*([A-Za-z]+)(\d+)\s*(?::\s*([A-Za-z]+)(\d+)\s*)?$")


def parse_range_reference(ref: str) -> tuple[int, int, int, int]:
    """Parse an A1-style reference ("A1:F20") into zero-based bounds.

    Returns (start_row, end_row, start_col, end_col). A single cell ("B3")
    yields a zero-extent range.

    Raises:
        ValueError: malformed reference
    """
    m = _A1_REF.match(ref)
    if not m:
        raise ValueError(f"invalid range reference: {ref!r}")
    c1, r1, c2, r2 = m.groups()
    if int(r1) < 1 or (r2 is not None and int(r2) < 1):
        raise ValueError(f"row numbers start at 1: {ref!r}")
    start_col = get_column_index(c1)
    start_row = int(r1) - 1
    end_col = get_column_index(c2) if c2 else start_col
    end_row = int(r2) - 1 if r2 else start_row
    return start_row, end_row, start_col, end_col


class RangeSelection:
    """Committed ranges plus the drag currently being drawn.

    Ids come from a counter owned by the instance, so two wizard sessions
    never hand out colliding ids.
    """

    def __init__(self, colors: tuple[str, ...] = RANGE_COLORS) -> None:
        self._colors = colors
        self._ranges: list[SelectionRange] = []
        self._counter = 0
        self.active_range_id: str | None = None
        self.is_selecting = False
        self._start: CellPosition | None = None
        self._end: CellPosition | None = None

    # ----------------------------------------------------------------- state
    @property
    def ranges(self) -> list[SelectionRange]:
        return list(self._ranges)

    @property
    def current_selection(self) -> SelectionRange | None:
        if not self.is_selecting or self._start is None or self._end is None:
            return None
        return SelectionRange(
            id="current",
            start_row=self._start.row,
            end_row=self._end.row,
            start_col=self._start.col,
            end_col=self._end.col,
            color=self._next_color(),
        )

    def _next_color(self) -> str:
        return self._colors[len(self._ranges) % len(self._colors)]

    def _next_id(self) -> str:
        self._counter += 1
        return f"range_{self._counter}"

    # --------------------------------------------------------------- actions
    def start_selection(self, row: int, col: int) -> None:
        self.is_selecting = True
        self._start = CellPosition(row, col)
        self._end = CellPosition(row, col)

    def update_selection(self, row: int, col: int) -> None:
        if not self.is_selecting:
            return
        self._end = CellPosition(row, col)

    def end_selection(self) -> SelectionRange | None:
        """Commit the drag. Returns the new range, or None for a click without drag."""
        candidate = self.current_selection
        self.is_selecting = False
        self._start = None
        self._end = None
        if candidate is None or not candidate.normalized().has_extent:
            return None
        new_range = SelectionRange(
            id=self._next_id(),
            start_row=candidate.start_row,
            end_row=candidate.end_row,
            start_col=candidate.start_col,
            end_col=candidate.end_col,
            color=candidate.color,
        )
        self._ranges.append(new_range)
        self.active_range_id = new_range.id
        return new_range

    def add_range(self, start_row: int, end_row: int, start_col: int, end_col: int) -> SelectionRange | None:
        """Commit a range given by bounds (CLI --range, "select all").

        Same rule as a drag: a single cell is not a range.
        """
        self.start_selection(start_row, start_col)
        self.update_selection(end_row, end_col)
        return self.end_selection()

    def remove_range(self, range_id: str) -> None:
        self._ranges = [r for r in self._ranges if r.id != range_id]
        if self.active_range_id == range_id:
            self.active_range_id = None

    def clear_ranges(self) -> None:
        self._ranges = []
        self.active_range_id = None
        self.is_selecting = False
        self._start = None
        self._end = None

    def set_active_range(self, range_id: str | None) -> None:
        self.active_range_id = range_id

    # --------------------------------------------------------------- queries
    def get_range_for_cell(self, row: int, col: int) -> SelectionRange | None:
        """Range that owns a cell: the drag in progress first, then creation order."""
        current = self.current_selection
        if current is not None and current.contains(row, col):
            return current
        for r in self._ranges:
            if r.contains(row, col):
                return r
        return None

    def is_in_range(self, row: int, col: int) -> bool:
        return self.get_range_for_cell(row, col) is not None
