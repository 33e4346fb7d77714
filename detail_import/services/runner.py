from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import ImportConfig
from ..excel.reader import read_workbook
from ..logging.error_log import ErrorLogBuffer
from ..models.detail import DetailRecord
from ..models.error_record import ErrorRecord
from ..models.reference import ReferenceData
from .orchestrator import ImportWizard, NoValidRowsError, OrderFormStore, WizardStateError
from .progress import ProgressTracker
from .selection import parse_range_reference

"""Headless batch import: every spreadsheet runs through its own wizard session.

For each file: decode -> (sheet) -> one range (given, or the whole used
area) -> auto-detected mapping -> validation -> commit to the store. Row
errors and warnings go to the error log; a file that cannot get past a
wizard gate is counted as failed and the run continues with the next file.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "RunOptions",
    "FileStat",
    "RunResult",
    "JsonLinesOrderStore",
    "import_file",
    "process_files",
]


@dataclass(frozen=True)
class RunOptions:
    sheet: str | None = None
    range_ref: str | None = None  # "A1:F20"
    has_header_row: bool = True


@dataclass(frozen=True)
class FileStat:
    file: str
    success: bool
    rows: int = 0
    valid: int = 0
    errors: int = 0
    warnings: int = 0
    imported: int = 0
    area: float = 0.0
    message: str | None = None


@dataclass(frozen=True)
class RunResult:
    success_files: int
    failed_files: int
    total_rows: int
    valid_rows: int
    error_rows: int
    warning_rows: int
    imported: int
    total_area: float
    elapsed_seconds: float
    file_stats: list[FileStat] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files


class JsonLinesOrderStore:
    """Order-form store writing one JSON object per committed detail."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.count = 0
        self.total_quantity = 0
        self.total_area = 0.0
        self._pending: list[DetailRecord] = []

    def add_detail(self, record: DetailRecord) -> None:
        self._pending.append(record)

    def recalculate_totals(self) -> None:
        """Write the details added since the last call and update totals."""
        if self._pending:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                for record in self._pending:
                    f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
        self.count += len(self._pending)
        self.total_quantity += sum(r.quantity for r in self._pending)
        self.total_area = round(self.total_area + sum(r.area for r in self._pending), 2)
        self._pending.clear()


async def _ready(data: ReferenceData) -> ReferenceData:
    return data


def _failed(file_name: str, message: str) -> FileStat:
    logger.error(f"{file_name}: {message}")
    return FileStat(file=file_name, success=False, message=message)


async def import_file(
    path: Path,
    config: ImportConfig,
    reference_data: ReferenceData,
    store: OrderFormStore,
    error_log: ErrorLogBuffer,
    options: RunOptions | None = None,
) -> FileStat:
    opts = options or RunOptions()
    wizard = ImportWizard(config)
    try:
        decode = asyncio.to_thread(read_workbook, path, None, config.uploads.spreadsheet_max_bytes)
        await asyncio.gather(
            wizard.upload(decode, file_name=path.name),
            wizard.load_reference_data(_ready(reference_data)),
        )
        if wizard.source_error:
            error_log.append(
                ErrorRecord.create(path.name, "", -1, "", "decode_error", "SOURCE_DECODE", wizard.source_error)
            )
            return _failed(path.name, wizard.source_error)

        wizard.next()
        if opts.sheet:
            wizard.select_sheet(opts.sheet)
        matrix = wizard.matrix
        if matrix is None or matrix.row_count == 0:
            return _failed(path.name, f"sheet {wizard.sheet_name!r} is empty")
        if opts.range_ref:
            bounds = parse_range_reference(opts.range_ref)
        else:
            bounds = (0, matrix.row_count - 1, 0, matrix.col_count - 1)
        if wizard.selection.add_range(*bounds) is None:
            return _failed(path.name, "selected range is a single cell")

        wizard.set_has_header_row(opts.has_header_row)
        wizard.next()
        mapping = wizard.auto_detect_mapping()
        logger.debug(f"{path.name}: mapping {mapping.to_dict()}")
        if not wizard.can_go_next():
            return _failed(path.name, "could not map height, width and quantity columns")
        wizard.next()

        rows = wizard.validated_rows
        error_log.append_rows(path.name, wizard.sheet_name or "", rows)
        stats = wizard.stats
        outcome = wizard.commit(store)
    except NoValidRowsError:
        stats = wizard.stats
        logger.warning(f"{path.name}: no valid rows ({stats.error_rows} with errors)")
        return FileStat(
            file=path.name,
            success=False,
            rows=stats.total_rows,
            errors=stats.error_rows,
            warnings=stats.warning_rows,
            message="no valid rows",
        )
    except (WizardStateError, ValueError) as e:
        return _failed(path.name, str(e))
    finally:
        wizard.close()

    logger.info(f"{path.name}: {outcome.message} ({outcome.total_area} m2)")
    return FileStat(
        file=path.name,
        success=True,
        rows=stats.total_rows,
        valid=stats.valid_rows,
        errors=stats.error_rows,
        warnings=stats.warning_rows,
        imported=outcome.imported_count,
        area=outcome.total_area,
    )


async def process_files(
    paths: Sequence[Path],
    config: ImportConfig,
    reference_data: ReferenceData,
    store: OrderFormStore,
    error_log: ErrorLogBuffer,
    options: RunOptions | None = None,
) -> RunResult:
    """Import every file in order and aggregate the run metrics."""
    start_time = datetime.now(UTC)
    stats: list[FileStat] = []
    with ProgressTracker(len(paths)) as progress:
        for path in paths:
            progress.start_file(path)
            stat = await import_file(path, config, reference_data, store, error_log, options)
            stats.append(stat)
            progress.finish_file(stat.success)
            progress.set_postfix(imported=sum(s.imported for s in stats))

    elapsed = (datetime.now(UTC) - start_time).total_seconds()
    return RunResult(
        success_files=sum(1 for s in stats if s.success),
        failed_files=sum(1 for s in stats if not s.success),
        total_rows=sum(s.rows for s in stats),
        valid_rows=sum(s.valid for s in stats),
        error_rows=sum(s.errors for s in stats),
        warning_rows=sum(s.warnings for s in stats),
        imported=sum(s.imported for s in stats),
        total_area=round(sum(s.area for s in stats), 2),
        elapsed_seconds=elapsed,
        file_stats=stats,
    )
