from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from ..config.loader import ImportConfig, ImportDefaults, default_config
from ..db.catalogs import CatalogLoadError
from ..excel.reader import SourceDecodeError
from ..models.cells import CellMatrix, Workbook, get_column_index
from ..models.detail import DetailRecord, ImportStats, compute_area
from ..models.mapping import FieldMapping, ImportableField
from ..models.reference import ReferenceData, UnresolvedReferences
from ..models.rows import ImportRow, ValidatedRow
from ..sources.pdf import PDF_EXTENSIONS, PdfParsedResult, convert_to_import_rows
from ..sources.vlm import IMAGE_EXTENSIONS, VlmImportResult, items_to_import_rows
from .mapping import auto_detect_mapping, effective_mapping, missing_required_fields
from .selection import RangeSelection
from .validation import ImportValidation

"""Import wizard: one session from upload to commit.

Spreadsheet path: upload -> select -> mapping -> validation
PDF / image path: upload -> validation

Each step has a gate (``can_go_next``); ``next``/``back`` move exactly one
step. Rows are extracted and validated on entering the validation step, and
only when an upstream input (source, sheet, ranges, mapping, header flag)
changed since the last extraction; otherwise edits made in the validation
step survive a back/next round trip.

The wizard awaits exactly two things: the source decode and the catalog load.
Both are bound to the session's CancellationToken, so a result that arrives
after ``close()``/``reset()`` is dropped.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "SourceKind",
    "WizardStep",
    "STEPS_BY_SOURCE",
    "WizardStateError",
    "NoValidRowsError",
    "CancellationToken",
    "ImportOutcome",
    "OrderFormStore",
    "InMemoryOrderFormStore",
    "build_detail_record",
    "ImportWizard",
    "source_kind_for",
]


class SourceKind(str, Enum):
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    IMAGE = "image"


class WizardStep(str, Enum):
    UPLOAD = "upload"
    SELECT = "select"
    MAPPING = "mapping"
    VALIDATION = "validation"


STEPS_BY_SOURCE: dict[SourceKind, tuple[WizardStep, ...]] = {
    SourceKind.SPREADSHEET: (WizardStep.UPLOAD, WizardStep.SELECT, WizardStep.MAPPING, WizardStep.VALIDATION),
    SourceKind.PDF: (WizardStep.UPLOAD, WizardStep.VALIDATION),
    SourceKind.IMAGE: (WizardStep.UPLOAD, WizardStep.VALIDATION),
}


class WizardStateError(Exception):
    """Operation not allowed in the current wizard state."""


class NoValidRowsError(WizardStateError):
    pass


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(frozen=True)
class ImportOutcome:
    imported_count: int
    total_area: float
    records: tuple[DetailRecord, ...] = ()
    order_number: str | None = None  # PDF source only

    @property
    def message(self) -> str:
        if self.order_number:
            return f"Imported {self.imported_count} details from order {self.order_number}"
        return f"Imported {self.imported_count} details"


class OrderFormStore(Protocol):
    """Destination of committed details (the order being edited)."""

    def add_detail(self, record: DetailRecord) -> None: ...

    def recalculate_totals(self) -> None: ...


class InMemoryOrderFormStore:
    def __init__(self) -> None:
        self.details: list[DetailRecord] = []
        self.total_quantity = 0
        self.total_area = 0.0
        self.recalculations = 0

    def add_detail(self, record: DetailRecord) -> None:
        self.details.append(record)

    def recalculate_totals(self) -> None:
        self.total_quantity = sum(d.quantity for d in self.details)
        self.total_area = round(sum(d.area for d in self.details), 2)
        self.recalculations += 1


def build_detail_record(row: ValidatedRow, defaults: ImportDefaults) -> DetailRecord:
    """Convert one valid row into the committed record.

    Quantity is rounded half-up (minimum 1) and the area is computed from the
    rounded quantity. Unresolved references fall back to the configured ids.
    """
    if row.height is None or row.width is None or row.quantity is None:
        raise ValueError(f"row {row.source_row_index} is not valid")
    quantity = max(1, math.floor(row.quantity + 0.5))
    return DetailRecord(
        height=row.height,
        width=row.width,
        quantity=quantity,
        area=compute_area(row.height, row.width, quantity),
        edge_type_id=row.edge_type_id if row.edge_type_id is not None else defaults.edge_type_id,
        film_id=row.film_id if row.film_id is not None else defaults.film_id,
        material_id=row.material_id if row.material_id is not None else defaults.material_id,
        milling_type_id=row.milling_type_id if row.milling_type_id is not None else defaults.milling_type_id,
        priority=defaults.priority,
        note=row.note,
        detail_name=row.detail_name,
    )


class ImportWizard:
    """State of one import session. Not thread-safe; drive it from one event loop."""

    def __init__(self, config: ImportConfig | None = None) -> None:
        self.config = config or default_config()
        self._token = CancellationToken()
        self._init_state()

    def _init_state(self) -> None:
        self.source_kind = SourceKind.SPREADSHEET
        self.step = WizardStep.UPLOAD
        self.file_name: str | None = None
        self.workbook: Workbook | None = None
        self.sheet_name: str | None = None
        self.pdf_result: PdfParsedResult | None = None
        self.vlm_result: VlmImportResult | None = None
        self.source_rows: list[ImportRow] | None = None
        self.source_error: str | None = None
        self.reference_error: str | None = None
        self.selection = RangeSelection()
        self.has_header_row = True
        self.mapping = FieldMapping.empty()
        self.validation = ImportValidation(limits=self.config.limits)
        self.is_complete = False
        self._references_loaded = False
        self._pending_uploads = 0
        self._source_version = 0
        self._extracted_key: tuple[Any, ...] | None = None

    # ------------------------------------------------------------ properties
    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def steps(self) -> tuple[WizardStep, ...]:
        return STEPS_BY_SOURCE[self.source_kind]

    @property
    def is_loading(self) -> bool:
        return self._pending_uploads > 0

    @property
    def references_loaded(self) -> bool:
        return self._references_loaded

    @property
    def matrix(self) -> CellMatrix | None:
        if self.workbook is None or self.sheet_name is None:
            return None
        return self.workbook.sheet(self.sheet_name)

    @property
    def validated_rows(self) -> list[ValidatedRow]:
        return self.validation.validated_rows

    @property
    def unresolved_refs(self) -> UnresolvedReferences:
        return self.validation.unresolved_refs

    @property
    def stats(self) -> ImportStats:
        return self.validation.stats

    def _has_source(self) -> bool:
        if self.source_kind is SourceKind.SPREADSHEET:
            return self.matrix is not None
        return self.source_rows is not None

    # ------------------------------------------------------------ navigation
    def can_go_next(self) -> bool:
        if self.step is WizardStep.UPLOAD:
            return self._has_source() and self.source_error is None and not self.is_loading
        if self.step is WizardStep.SELECT:
            return len(self.selection.ranges) > 0
        if self.step is WizardStep.MAPPING:
            return not missing_required_fields(self.mapping, self.selection.ranges)
        return len(self.validation.get_valid_rows()) > 0

    def next(self) -> WizardStep:
        idx = self.steps.index(self.step)
        if idx == len(self.steps) - 1:
            raise WizardStateError(f"no step after {self.step.value}")
        if not self.can_go_next():
            raise WizardStateError(f"cannot leave {self.step.value}: step is not complete")
        self.step = self.steps[idx + 1]
        if self.step is WizardStep.VALIDATION:
            self._ensure_validated()
        return self.step

    def back(self) -> WizardStep:
        idx = self.steps.index(self.step)
        if idx == 0:
            raise WizardStateError(f"no step before {self.step.value}")
        if self.step is WizardStep.VALIDATION and self.source_kind is not SourceKind.SPREADSHEET:
            self.validation.reset()
            self._extracted_key = None
        self.step = self.steps[idx - 1]
        return self.step

    # ------------------------------------------------------------ async I/O
    async def upload(self, decode: Awaitable[Any], file_name: str | None = None) -> None:
        """Await a source decode and accept its result.

        ``decode`` resolves to a Workbook, PdfParsedResult, VlmImportResult or
        list of ImportRow. A SourceDecodeError is kept in ``source_error``.
        """
        token = self._token
        self._pending_uploads += 1
        self.source_error = None
        try:
            result = await decode
        except SourceDecodeError as e:
            if token.cancelled:
                logger.info(f"dropping failed upload after session close: {e}")
                return
            self.source_error = str(e)
            logger.warning(f"upload failed: {e}")
            return
        finally:
            if token is self._token:
                self._pending_uploads -= 1

        if token.cancelled:
            logger.info("dropping upload result after session close")
            return
        if isinstance(result, Workbook):
            self.accept_workbook(result)
        elif isinstance(result, PdfParsedResult):
            self.accept_pdf_result(result)
        elif isinstance(result, VlmImportResult):
            self.accept_vlm_result(result)
        elif isinstance(result, list):
            self.accept_rows(result, SourceKind.IMAGE)
        else:
            raise TypeError(f"unsupported decode result: {type(result).__name__}")
        if file_name:
            self.file_name = file_name

    async def load_reference_data(self, load: Awaitable[ReferenceData]) -> None:
        """Await the catalog load. A failed load leaves every reference unresolved."""
        token = self._token
        try:
            data = await load
        except CatalogLoadError as e:
            if token.cancelled:
                logger.info(f"dropping failed catalog load after session close: {e}")
                return
            self.reference_error = str(e)
            logger.warning(f"catalogs unavailable, references stay unresolved: {e}")
            data = ReferenceData()
        if token.cancelled:
            logger.info("dropping catalogs after session close")
            return
        self.set_reference_data(data)

    def set_reference_data(self, data: ReferenceData) -> None:
        self._references_loaded = True
        self.validation.set_reference_data(data)
        if self.step is WizardStep.VALIDATION:
            self._ensure_validated()

    # ------------------------------------------------------------ sources
    def _require_upload_step(self) -> None:
        if self.step is not WizardStep.UPLOAD:
            raise WizardStateError(f"sources are accepted on the upload step, not {self.step.value}")

    def _new_source(self, kind: SourceKind) -> None:
        self._require_upload_step()
        self.source_kind = kind
        self.workbook = None
        self.sheet_name = None
        self.pdf_result = None
        self.vlm_result = None
        self.source_rows = None
        self.source_error = None
        self.selection.clear_ranges()
        self.mapping = FieldMapping.empty()
        self.validation.reset()
        self._extracted_key = None
        self._source_version += 1

    def accept_workbook(self, workbook: Workbook) -> None:
        self._new_source(SourceKind.SPREADSHEET)
        self.workbook = workbook
        self.file_name = workbook.file_name
        if not workbook.sheet_names:
            self.source_error = f"workbook {workbook.file_name} has no sheets"
            return
        self.sheet_name = workbook.sheet_names[0]
        logger.debug(f"accepted workbook {workbook.file_name}: sheets={list(workbook.sheet_names)}")

    def accept_pdf_result(self, result: PdfParsedResult) -> None:
        self._new_source(SourceKind.PDF)
        self.pdf_result = result
        for message in result.parse_errors:
            logger.warning(f"pdf: {message}")
        rows = convert_to_import_rows(result)
        self.source_rows = rows
        if not rows:
            self.source_error = "no details recognized in PDF"

    def accept_vlm_result(self, result: VlmImportResult) -> None:
        self._new_source(SourceKind.IMAGE)
        self.vlm_result = result
        if result.parse_error:
            self.source_error = f"could not parse image analysis: {result.parse_error}"
            return
        rows = items_to_import_rows(result.items)
        self.source_rows = rows
        if not rows:
            self.source_error = "no details recognized in image"

    def accept_rows(self, rows: Iterable[ImportRow], source_kind: SourceKind) -> None:
        """Accept rows produced by an already-decoded PDF or image source."""
        if source_kind is SourceKind.SPREADSHEET:
            raise ValueError("spreadsheet sources go through accept_workbook")
        self._new_source(source_kind)
        self.source_rows = list(rows)
        if not self.source_rows:
            self.source_error = "source contains no rows"

    # ------------------------------------------------------------ spreadsheet setup
    def _require_workbook(self) -> Workbook:
        if self.source_kind is not SourceKind.SPREADSHEET or self.workbook is None:
            raise WizardStateError("no spreadsheet loaded")
        return self.workbook

    def select_sheet(self, name: str) -> None:
        """Switch sheets; ranges and mapping belong to the old sheet and are cleared."""
        workbook = self._require_workbook()
        if name not in workbook.sheets:
            raise WizardStateError(f"sheet not found: {name}")
        if name == self.sheet_name:
            return
        self.sheet_name = name
        self.selection.clear_ranges()
        self.mapping = FieldMapping.empty()

    def set_has_header_row(self, value: bool) -> None:
        self.has_header_row = value

    def set_mapping(self, mapping: FieldMapping) -> None:
        self.mapping = mapping

    def update_mapping(self, field: ImportableField | str, column: str | None) -> FieldMapping:
        """Assign one field to a column letter (None clears it).

        Raises:
            ValueError: unknown field or malformed column letter
        """
        fld = ImportableField(field)
        if column is not None:
            get_column_index(column)
        self.mapping = self.mapping.with_field(fld, column)
        return self.mapping

    def auto_detect_mapping(self) -> FieldMapping:
        """Propose a mapping from the first committed range."""
        matrix = self.matrix
        ranges = self.selection.ranges
        if matrix is None or not ranges:
            raise WizardStateError("auto-detect needs a sheet and at least one range")
        self.mapping = auto_detect_mapping(
            matrix, ranges[0], self.has_header_row, self.config.field_keywords
        )
        return self.mapping

    # ------------------------------------------------------------ validation
    def _upstream_key(self) -> tuple[Any, ...]:
        return (
            self._source_version,
            self.sheet_name,
            tuple(self.selection.ranges),
            effective_mapping(self.mapping, self.selection.ranges),
            self.has_header_row,
        )

    def _ensure_validated(self) -> None:
        if not self._references_loaded:
            logger.debug("validation deferred until catalogs are loaded")
            return
        key = self._upstream_key()
        if key == self._extracted_key:
            return
        if self.source_kind is SourceKind.SPREADSHEET:
            matrix = self.matrix
            if matrix is None:
                raise WizardStateError("no sheet selected")
            self.validation.process_import(matrix, self.selection.ranges, self.mapping, self.has_header_row)
        else:
            self.validation.process_rows(self.source_rows or [])
        self._extracted_key = key
        stats = self.validation.stats
        logger.info(
            f"validated {stats.total_rows} rows: valid={stats.valid_rows} "
            f"errors={stats.error_rows} warnings={stats.warning_rows}"
        )

    def update_row(self, index: int, field_name: str, value: object) -> ValidatedRow:
        return self.validation.update_row(index, field_name, value)

    def remove_row(self, index: int) -> None:
        self.validation.remove_row(index)

    def batch_replace_reference(self, field_name: str, original_value: str, new_id: int) -> int:
        return self.validation.batch_replace_reference(field_name, original_value, new_id)

    # ------------------------------------------------------------ commit
    def commit(self, store: OrderFormStore) -> ImportOutcome:
        """Append every valid row to ``store`` and recalculate its totals once.

        Raises:
            WizardStateError: not on the validation step, or already committed
            NoValidRowsError: nothing to import
        """
        if self.step is not WizardStep.VALIDATION:
            raise WizardStateError(f"commit is only possible on the validation step, not {self.step.value}")
        if self.is_complete:
            raise WizardStateError("import already committed")
        valid = self.validation.get_valid_rows()
        if not valid:
            raise NoValidRowsError("no valid rows to import")

        records = tuple(build_detail_record(r, self.config.defaults) for r in valid)
        for record in records:
            store.add_detail(record)
        store.recalculate_totals()
        self.is_complete = True

        order_number = None
        if self.source_kind is SourceKind.PDF and self.pdf_result is not None:
            order_number = self.pdf_result.metadata.order_number or None
        outcome = ImportOutcome(
            imported_count=len(records),
            total_area=round(sum(r.area for r in records), 2),
            records=records,
            order_number=order_number,
        )
        logger.info(outcome.message)
        return outcome

    # ------------------------------------------------------------ lifecycle
    def reset(self) -> None:
        """Cancel in-flight loads and discard all session state."""
        self._token.cancel()
        self._token = CancellationToken()
        self._init_state()

    def close(self) -> None:
        self.reset()


def source_kind_for(path: Path) -> SourceKind:
    suffix = path.suffix.lower()
    if suffix in PDF_EXTENSIONS:
        return SourceKind.PDF
    if suffix in IMAGE_EXTENSIONS:
        return SourceKind.IMAGE
    return SourceKind.SPREADSHEET
