from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import fields, replace

from ..config.loader import ValidationLimits
from ..models.cells import CellMatrix, parse_number, parse_string
from ..models.detail import ImportStats
from ..models.mapping import FieldMapping
from ..models.reference import REFERENCE_FIELDS, ReferenceData, UnresolvedReferences, reference_field
from ..models.rows import ErrorCode, FieldError, ImportRow, ValidatedRow
from ..models.selection import SelectionRange
from .mapping import extract_rows
from .references import ReferenceResolutionError, collect_unresolved, resolve_reference, rows_matching

"""Row validation engine.

``validate_row`` is pure: the same row and catalogs always give the same
ValidatedRow. All rules run (no short-circuit):

    height    error: missing or <= 0      warning: > limits.max_height
    width     error: missing or <= 0      warning: > limits.max_width
    quantity  error: missing or <= 0      warning: not an integer
    edge type / film / material / milling type
              warning: free text given but no catalog id

``ImportValidation`` holds the rows of one wizard session and re-validates a
row completely whenever it is edited.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "validate_row",
    "batch_replace",
    "compute_stats",
    "ImportValidation",
    "NUMERIC_ROW_FIELDS",
    "TEXT_ROW_FIELDS",
]

NUMERIC_ROW_FIELDS = ("height", "width", "quantity")
TEXT_ROW_FIELDS = ("note", "detail_name") + tuple(rf.name_attr for rf in REFERENCE_FIELDS)
ID_ROW_FIELDS = tuple(rf.id_attr for rf in REFERENCE_FIELDS)

_IMPORT_ROW_FIELDS = tuple(f.name for f in fields(ImportRow))


def _fmt(value: float) -> str:
    return f"{value:g}"


def _check_positive(field_name: str, value: float | None, errors: list[FieldError]) -> bool:
    if value is None:
        errors.append(FieldError.error(field_name, f"{field_name} is required", ErrorCode.REQUIRED))
        return False
    if value <= 0:
        errors.append(
            FieldError.error(field_name, f"{field_name} must be greater than 0", ErrorCode.NOT_POSITIVE)
        )
        return False
    return True


def _parse_id(value: object, label: str) -> int | None:
    """Catalog id from an edit value; blank clears the id."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = parse_number(value)
    if number is None or not float(number).is_integer():
        raise ReferenceResolutionError(f"{label} id must be an integer, got {value!r}")
    return int(number)


def validate_row(
    row: ImportRow,
    reference_data: ReferenceData,
    limits: ValidationLimits | None = None,
) -> ValidatedRow:
    """Validate one row and resolve its catalog references.

    An id already on the row (manual or batch resolution) is kept when it is
    a member of the current catalog; otherwise the id is resolved from the
    free text. Ids never point outside ``reference_data``.
    """
    lim = limits or ValidationLimits()
    errors: list[FieldError] = []
    warnings: list[FieldError] = []

    if _check_positive("height", row.height, errors) and row.height > lim.max_height:
        warnings.append(
            FieldError.warning("height", f"height exceeds {_fmt(lim.max_height)}mm", ErrorCode.EXCEEDS_LIMIT)
        )
    if _check_positive("width", row.width, errors) and row.width > lim.max_width:
        warnings.append(
            FieldError.warning("width", f"width exceeds {_fmt(lim.max_width)}mm", ErrorCode.EXCEEDS_LIMIT)
        )
    if _check_positive("quantity", row.quantity, errors) and not float(row.quantity).is_integer():
        warnings.append(
            FieldError.warning(
                "quantity",
                f"quantity {_fmt(row.quantity)} is not an integer and will be rounded",
                ErrorCode.NOT_INTEGER,
            )
        )

    resolved: dict[str, int | None] = {}
    for rf in REFERENCE_FIELDS:
        name = getattr(row, rf.name_attr)
        current = getattr(row, rf.id_attr, None)
        if current is not None and reference_data.contains(rf.field, current):
            item_id: int | None = current
        else:
            item_id = resolve_reference(name, reference_data.catalog(rf.field))
        resolved[rf.id_attr] = item_id
        if name and item_id is None:
            warnings.append(
                FieldError.warning(rf.field, f'{rf.label} not found: "{name}"', ErrorCode.UNRESOLVED_REFERENCE)
            )

    base = {name: getattr(row, name) for name in _IMPORT_ROW_FIELDS}
    return ValidatedRow(**base, **resolved, errors=tuple(errors), warnings=tuple(warnings))


def batch_replace(
    rows: Sequence[ValidatedRow],
    field_name: str,
    original_value: str,
    new_id: int,
    reference_data: ReferenceData,
    limits: ValidationLimits | None = None,
) -> tuple[list[ValidatedRow], int]:
    """Set ``new_id`` on every row whose free text equals ``original_value``.

    Returns the new row list and the number of rows changed.

    Raises:
        ReferenceResolutionError: ``new_id`` is not in the catalog
    """
    rf = reference_field(field_name)
    if not reference_data.contains(rf.field, new_id):
        raise ReferenceResolutionError(f"{rf.label} id {new_id} is not in the catalog")
    out = list(rows)
    indexes = rows_matching(out, rf.field, original_value)
    for i in indexes:
        out[i] = validate_row(replace(out[i], **{rf.id_attr: new_id}), reference_data, limits)
    return out, len(indexes)


def compute_stats(rows: Sequence[ValidatedRow]) -> ImportStats:
    total_quantity = 0.0
    total_area = 0.0
    valid = errors = warned = 0
    for row in rows:
        if row.is_valid:
            valid += 1
            qty = row.quantity or 0
            total_quantity += qty
            total_area += (row.height or 0) * (row.width or 0) * qty / 1_000_000
        else:
            errors += 1
        if row.warnings:
            warned += 1
    return ImportStats(
        total_rows=len(rows),
        valid_rows=valid,
        error_rows=errors,
        warning_rows=warned,
        total_quantity=total_quantity,
        total_area=round(total_area, 2),
    )


class ImportValidation:
    """Validated rows of one wizard session plus the catalogs they resolve against."""

    def __init__(
        self,
        reference_data: ReferenceData | None = None,
        limits: ValidationLimits | None = None,
    ) -> None:
        self._reference_data = reference_data or ReferenceData()
        self._limits = limits or ValidationLimits()
        self._rows: list[ValidatedRow] = []

    # ----------------------------------------------------------------- state
    @property
    def validated_rows(self) -> list[ValidatedRow]:
        return list(self._rows)

    @property
    def reference_data(self) -> ReferenceData:
        return self._reference_data

    @property
    def unresolved_refs(self) -> UnresolvedReferences:
        return collect_unresolved(self._rows)

    @property
    def stats(self) -> ImportStats:
        return compute_stats(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def get_valid_rows(self) -> list[ValidatedRow]:
        return [r for r in self._rows if r.is_valid]

    # --------------------------------------------------------------- actions
    def set_reference_data(self, data: ReferenceData) -> None:
        """Swap catalogs and re-validate every row against them."""
        self._reference_data = data
        self._rows = [self._validate(r) for r in self._rows]

    def process_rows(self, rows: Iterable[ImportRow]) -> list[ValidatedRow]:
        """Replace the session rows with freshly validated ``rows``."""
        self._rows = [self._validate(r) for r in rows]
        logger.debug(f"validated {len(self._rows)} rows ({len(self.get_valid_rows())} valid)")
        return self.validated_rows

    def process_import(
        self,
        matrix: CellMatrix,
        ranges: Sequence[SelectionRange],
        mapping: FieldMapping,
        has_header_row: bool,
    ) -> list[ValidatedRow]:
        return self.process_rows(extract_rows(matrix, ranges, mapping, has_header_row))

    def update_row(self, index: int, field_name: str, value: object) -> ValidatedRow:
        """Edit one field and fully re-validate the row.

        Editing a reference name drops that reference's id so the new text is
        resolved afresh. Setting an id directly accepts only catalog members.

        Raises:
            IndexError: no row at ``index``
            KeyError: field is not editable
            ReferenceResolutionError: id not numeric or not present in the catalog
        """
        row = self._rows[index]
        if field_name in NUMERIC_ROW_FIELDS:
            changes: dict[str, object] = {field_name: parse_number(value)}
        elif field_name in TEXT_ROW_FIELDS:
            changes = {field_name: parse_string(value)}
            if field_name.endswith("_name") and field_name != "detail_name":
                changes[reference_field(field_name).id_attr] = None
        elif field_name in ID_ROW_FIELDS:
            rf = reference_field(field_name)
            item_id = _parse_id(value, rf.label)
            if item_id is not None and not self._reference_data.contains(rf.field, item_id):
                raise ReferenceResolutionError(f"{rf.label} id {item_id} is not in the catalog")
            changes = {field_name: item_id}
        else:
            raise KeyError(f"field is not editable: {field_name}")

        updated = self._validate(replace(row, **changes))
        self._rows[index] = updated
        return updated

    def remove_row(self, index: int) -> None:
        del self._rows[index]

    def batch_replace_reference(self, field_name: str, original_value: str, new_id: int) -> int:
        """Resolve every row whose free text equals ``original_value`` to ``new_id``.

        The free text stays on the rows as provenance. Returns the number of
        rows updated.

        Raises:
            ReferenceResolutionError: ``new_id`` is not in the catalog
        """
        self._rows, changed = batch_replace(
            self._rows, field_name, original_value, new_id, self._reference_data, self._limits
        )
        label = reference_field(field_name).label
        logger.info(f'resolved {label} "{original_value}" -> id {new_id} on {changed} row(s)')
        return changed

    def reset(self) -> None:
        self._rows = []

    def _validate(self, row: ImportRow) -> ValidatedRow:
        return validate_row(row, self._reference_data, self._limits)
