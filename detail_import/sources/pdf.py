from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..excel.reader import SourceDecodeError, check_upload
from ..models.rows import ImportRow

"""PDF source: extractor result types and conversion to ImportRows.

Text extraction and the geometric grouping of text into detail blocks belong
to the extractor collaborator (``PdfExtractor``). This module only defines
what the extractor hands back and how that becomes ImportRows.
"""

__all__ = [
    "PdfOrderMetadata",
    "PdfDetailRaw",
    "PdfParsedResult",
    "PdfExtractor",
    "check_pdf_upload",
    "convert_to_import_rows",
    "check_declared_count",
]

PDF_EXTENSIONS = (".pdf",)
PDF_MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB
DETAIL_NAME_SEPARATOR = "~~"


@dataclass(frozen=True)
class PdfOrderMetadata:
    order_number: str = ""  # номер присадки, e.g. "1057"
    order_name: str = ""  # e.g. "Кухня"
    material: str = ""  # e.g. "МДФ 16 мм"
    company: str | None = None
    print_date: str | None = None
    total_count: int | None = None  # "Общ. кол. 44"


@dataclass(frozen=True)
class PdfDetailRaw:
    designation: str  # "Обозн.", e.g. "11.02"
    name: str  # "Наименование"
    position: int
    quantity: float
    length: float  # first size value -> height
    width: float
    milling: str | None = None
    film: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class PdfParsedResult:
    metadata: PdfOrderMetadata
    details: list[PdfDetailRaw] = field(default_factory=list)
    pages: int = 0
    parse_errors: list[str] = field(default_factory=list)


class PdfExtractor(Protocol):
    """Collaborator that turns a PDF file into a PdfParsedResult."""

    def extract(self, path: Path) -> PdfParsedResult: ...


def check_pdf_upload(path: Path, max_bytes: int = PDF_MAX_FILE_SIZE) -> None:
    check_upload(path, PDF_EXTENSIONS, max_bytes)


def read_pdf(path: Path, extractor: PdfExtractor, max_bytes: int = PDF_MAX_FILE_SIZE) -> PdfParsedResult:
    """Check the upload and run the extractor, wrapping its failures.

    Raises:
        SourceDecodeError: wrong type / too large / extractor failure
    """
    check_pdf_upload(path, max_bytes)
    try:
        result = extractor.extract(path)
    except Exception as e:  # extractor is third-party code
        raise SourceDecodeError(f"failed to read PDF {path.name}: {e}") from e
    return check_declared_count(result)


def check_declared_count(result: PdfParsedResult) -> PdfParsedResult:
    """Add a parse error when the declared total differs from the details found."""
    declared = result.metadata.total_count
    if not declared or len(result.details) == declared:
        return result
    message = f"expected {declared} details, recognized {len(result.details)}"
    if message in result.parse_errors:
        return result
    return PdfParsedResult(
        metadata=result.metadata,
        details=result.details,
        pages=result.pages,
        parse_errors=[*result.parse_errors, message],
    )


def convert_to_import_rows(result: PdfParsedResult) -> list[ImportRow]:
    """One ImportRow per detail; detail name is "position~~designation~~name"."""
    return [
        ImportRow(
            source_row_index=index,
            height=detail.length,
            width=detail.width,
            quantity=detail.quantity,
            milling_type_name=detail.milling or None,
            film_name=detail.film or None,
            note=detail.note or None,
            detail_name=DETAIL_NAME_SEPARATOR.join(
                (str(detail.position), detail.designation, detail.name)
            ),
        )
        for index, detail in enumerate(result.details)
    ]
