from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .rows import FieldError, ValidatedRow

"""ErrorRecord model for the row issue log.

Every error and warning attached to a validated row during a CLI run is
written as one JSON line. ``row`` is the 1-based source row number; -1 marks a
source-level failure (decode error) where no row applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured row issue record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: source file name
        source: sheet name, or "<PDF>" / "<IMAGE>" for non-spreadsheet sources
        row: 1-based row number, -1 for source-level errors
        field: canonical field name, or "" for source-level errors
        error_type: "error" / "warning" / "decode_error"
        code: UPPER_SNAKE classification
        message: human readable text
    """
    timestamp: str
    file: str
    source: str
    row: int
    field: str
    error_type: str
    code: str
    message: str

    @staticmethod
    def create(
        file: str, source: str, row: int, field: str, error_type: str, code: str, message: str
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            source=source,
            row=row,
            field=field,
            error_type=error_type,
            code=code,
            message=message,
        )

    @staticmethod
    def from_field_error(file: str, source: str, row: ValidatedRow, issue: FieldError) -> ErrorRecord:
        return ErrorRecord.create(
            file=file,
            source=source,
            row=row.source_row_index + 1,
            field=issue.field,
            error_type=issue.type.value,
            code=issue.code.value,
            message=issue.message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict only: no extra keys
        return json.dumps(asdict(self), ensure_ascii=False)
