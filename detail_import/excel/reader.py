from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..models.cells import CellMatrix, CellValue, Workbook

"""Spreadsheet decoder: workbook file -> Workbook of CellMatrix sheets.

Sheets are read raw (``header=None``) with pandas; the operator picks the
header row later through range selection, so no header handling happens here.
Cells are converted to plain Python values: NaN -> None, Timestamp ->
datetime, numpy scalars -> int/float/bool.
"""

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".xlsm", ".xlsb")
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB


class SourceDecodeError(Exception):
    """Raised when an uploaded source cannot be decoded (type, size, corrupt file)."""


def check_upload(path: Path, extensions: Iterable[str], max_bytes: int) -> None:
    """Validate extension and size of an uploaded file.

    Raises:
        SourceDecodeError: missing file, unsupported extension or file too large
    """
    exts = tuple(extensions)
    if not path.exists() or not path.is_file():
        raise SourceDecodeError(f"file not found: {path}")
    if path.suffix.lower() not in exts:
        raise SourceDecodeError(
            f"unsupported file type '{path.suffix}'. Supported: {', '.join(exts)}"
        )
    size = path.stat().st_size
    if size > max_bytes:
        raise SourceDecodeError(
            f"file too large: {size} bytes (max {max_bytes // (1024 * 1024)} MB)"
        )


def _to_cell(value: Any) -> CellValue:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, (datetime, date, str)):
        return value
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return None if np.isnan(value) else float(value)
    if pd.isna(value):
        return None
    # Anything else (formulas cached as objects, rich text): keep its text
    return str(value)


def dataframe_to_matrix(df: pd.DataFrame, sheet_name: str) -> CellMatrix:
    """Convert a raw (header=None) DataFrame into a CellMatrix."""
    rows: list[list[CellValue]] = [
        [_to_cell(v) for v in raw] for raw in df.itertuples(index=False, name=None)
    ]
    # Trailing fully-empty rows are produced by formatted-but-empty cells
    while rows and all(v is None for v in rows[-1]):
        rows.pop()
    return CellMatrix.from_rows(sheet_name, rows)


def read_workbook(
    path: Path,
    target_sheets: Iterable[str] | None = None,
    max_bytes: int = MAX_FILE_SIZE,
) -> Workbook:
    """Decode a spreadsheet file into a Workbook.

    Parameters
    ----------
    path: spreadsheet file path
    target_sheets: restrict decoding to these sheet names (None = all sheets)
    max_bytes: upload size limit

    Raises
    ------
    SourceDecodeError: unsupported type, oversized or unreadable workbook
    """
    check_upload(path, SUPPORTED_EXTENSIONS, max_bytes)
    wanted = set(target_sheets) if target_sheets is not None else None
    try:
        xls = pd.ExcelFile(path)
        names: list[str] = []
        sheets: dict[str, CellMatrix] = {}
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            df = xls.parse(name, header=None)
            sheets[str(name)] = dataframe_to_matrix(df, str(name))
            names.append(str(name))
    except Exception as e:  # openpyxl / xlrd / pyxlsb raise a wide range of errors
        raise SourceDecodeError(f"failed to read workbook {path.name}: {e}") from e

    logger.debug(f"decoded workbook {path.name}: sheets={names}")
    return Workbook(file_name=path.name, sheet_names=tuple(names), sheets=sheets)
