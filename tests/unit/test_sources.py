from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from detail_import.excel.reader import SourceDecodeError
from detail_import.sources.pdf import (
    PdfDetailRaw,
    PdfOrderMetadata,
    PdfParsedResult,
    check_declared_count,
    check_pdf_upload,
    convert_to_import_rows,
    read_pdf,
)
from detail_import.sources.vlm import (
    analyze_image,
    check_image_upload,
    items_to_import_rows,
    normalize_item,
    parse_vlm_response,
)


def _pdf(total: int | None = None, details: int = 2) -> PdfParsedResult:
    return PdfParsedResult(
        metadata=PdfOrderMetadata(order_number="1057", total_count=total),
        details=[
            PdfDetailRaw(
                designation=f"11.0{i}", name="Фасад", position=i + 1, quantity=2, length=716, width=396,
                milling="Модерн", film="", note="ручка",
            )
            for i in range(details)
        ],
        pages=1,
    )


def test_convert_pdf_details_to_rows():
    rows = convert_to_import_rows(_pdf())
    assert len(rows) == 2
    first = rows[0]
    assert first.source_row_index == 0
    assert (first.height, first.width, first.quantity) == (716, 396, 2)
    assert first.detail_name == "1~~11.00~~Фасад"
    assert first.milling_type_name == "Модерн"
    assert first.film_name is None
    assert first.note == "ручка"


def test_declared_count_mismatch_is_reported_once():
    result = check_declared_count(_pdf(total=44))
    assert result.parse_errors == ["expected 44 details, recognized 2"]
    assert check_declared_count(result).parse_errors == result.parse_errors
    assert check_declared_count(_pdf(total=2)).parse_errors == []


def test_pdf_upload_checks(tmp_path: Path):
    pdf = tmp_path / "order.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    check_pdf_upload(pdf)
    with pytest.raises(SourceDecodeError):
        check_pdf_upload(pdf, max_bytes=4)
    with pytest.raises(SourceDecodeError):
        check_pdf_upload(tmp_path / "order.docx")


def test_read_pdf_wraps_extractor_failures(tmp_path: Path):
    pdf = tmp_path / "order.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    extractor = MagicMock()
    extractor.extract.side_effect = RuntimeError("broken xref table")
    with pytest.raises(SourceDecodeError, match="broken xref table"):
        read_pdf(pdf, extractor)

    extractor.extract.side_effect = None
    extractor.extract.return_value = _pdf(total=3)
    assert read_pdf(pdf, extractor).parse_errors == ["expected 3 details, recognized 2"]


def test_normalize_item_accepts_synonyms():
    item = normalize_item({"name": "Дверь", "h": "2000", "w": 600, "qty": 2, "кромка": "ПВХ", "notes": "стекло"})
    assert item.detail_name == "Дверь"
    assert (item.height, item.width, item.quantity) == (2000.0, 600.0, 2.0)
    assert item.edge == "ПВХ"
    assert item.note == "стекло"


def test_normalize_item_defaults_quantity_to_one():
    assert normalize_item({"height": 100, "width": 100}).quantity == 1


def test_parse_response_with_preparsed_items():
    result = parse_vlm_response({"success": True, "items": [{"height": 1, "width": 2}], "provider": "p", "model": "m"})
    assert result.success
    assert len(result.items) == 1
    assert (result.provider, result.model) == ("p", "m")


def test_parse_response_with_fenced_json():
    content = 'Here you go:\n```json\n{"items": [{"title": "Полка", "height": 300, "width": 250, "count": 4}]}\n```'
    result = parse_vlm_response({"success": True, "content": content})
    assert [i.detail_name for i in result.items] == ["Полка"]
    assert result.items[0].quantity == 4
    assert result.raw_content == content


def test_parse_response_with_bare_array_and_details_key():
    array = parse_vlm_response({"content": 'result: [{"height": 1, "width": 1}]'})
    assert len(array.items) == 1
    details = parse_vlm_response({"content": '{"details": [{"height": 1, "width": 1}, "junk"]}'})
    assert len(details.items) == 1


def test_unparseable_content_is_kept_with_error():
    result = parse_vlm_response({"success": True, "content": "I cannot read this photo"})
    assert not result.success
    assert result.items == []
    assert result.raw_content == "I cannot read this photo"
    assert parse_vlm_response({"content": "{not json}"}).parse_error


def test_failed_analysis_is_a_decode_error():
    with pytest.raises(SourceDecodeError, match="timeout"):
        parse_vlm_response({"success": False, "error": "timeout"})


def test_items_map_one_to_one():
    result = parse_vlm_response({"items": [{"height": 100, "width": 50, "film": "глянец"}, {"height": 0}]})
    rows = items_to_import_rows(result.items)
    assert [r.source_row_index for r in rows] == [0, 1]
    assert rows[0].film_name == "глянец"
    assert rows[1].height is None
    assert rows[1].quantity == 1


def test_image_upload_checks(tmp_path: Path):
    img = tmp_path / "photo.JPG"
    img.write_bytes(b"\xff\xd8\xff")
    check_image_upload(img)
    with pytest.raises(SourceDecodeError):
        check_image_upload(tmp_path / "photo.gif")


def test_analyze_image_sends_checked_photo(tmp_path: Path):
    img = tmp_path / "order.png"
    img.write_bytes(b"\x89PNG")
    sent = []

    class FakeClient:
        async def analyze(self, image: Path) -> dict:
            sent.append(image)
            return {"success": True, "model": "vl-test", "items": [{"h": 716, "w": 396, "qty": 2}]}

    result = asyncio.run(analyze_image(FakeClient(), img))

    assert sent == [img]
    assert result.success
    assert result.model == "vl-test"
    assert [(i.height, i.width, i.quantity) for i in result.items] == [(716, 396, 2)]


def test_analyze_image_rejects_unsupported_file_before_calling_model(tmp_path: Path):
    doc = tmp_path / "order.bmp"
    doc.write_bytes(b"BM")
    client = MagicMock()
    with pytest.raises(SourceDecodeError):
        asyncio.run(analyze_image(client, doc))
    client.analyze.assert_not_called()


def test_analyze_image_wraps_client_failures(tmp_path: Path):
    img = tmp_path / "order.webp"
    img.write_bytes(b"RIFF")

    class TimeoutClient:
        async def analyze(self, image: Path) -> dict:
            raise TimeoutError("read timed out")

    with pytest.raises(SourceDecodeError, match="image analysis failed for order.webp: read timed out"):
        asyncio.run(analyze_image(TimeoutClient(), img))
