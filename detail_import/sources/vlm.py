from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from ..excel.reader import SourceDecodeError, check_upload
from ..models.cells import parse_number, parse_string
from ..models.rows import ImportRow

"""Image source: vision-model analysis result -> ImportRows.

The HTTP client that uploads the photo and calls the model is a collaborator
(``VlmClient``). Its payload carries either ready ``items`` or free-form
``content`` with JSON somewhere inside (fenced block, bare object or array).
Item keys vary between prompts/models, so each canonical attribute accepts a
list of synonyms.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "VlmItem",
    "VlmImportResult",
    "VlmClient",
    "check_image_upload",
    "parse_vlm_response",
    "analyze_image",
    "normalize_item",
    "items_to_import_rows",
]

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
IMAGE_MAX_FILE_SIZE = 10 * 1024 * 1024

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BARE_JSON = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")

# canonical attribute -> accepted item keys, first non-empty wins
ITEM_KEYS: dict[str, tuple[str, ...]] = {
    "detail_name": ("detail_name", "name", "designation", "title"),
    "height": ("height", "h"),
    "width": ("width", "w"),
    "quantity": ("quantity", "qty", "count"),
    "price": ("price", "cost"),
    "edge": ("edge", "edging", "кромка"),
    "note": ("note", "notes", "comment", "примечание"),
    "film": ("film", "пленка", "плёнка"),
    "milling": ("milling", "фрезеровка"),
    "material": ("material", "материал"),
}


@dataclass(frozen=True)
class VlmItem:
    detail_name: str | None = None
    height: float | None = None
    width: float | None = None
    quantity: float | None = None
    price: float | None = None
    edge: str | None = None
    note: str | None = None
    film: str | None = None
    milling: str | None = None
    material: str | None = None


@dataclass(frozen=True)
class VlmImportResult:
    items: list[VlmItem] = field(default_factory=list)
    raw_content: str | None = None
    parse_error: str | None = None
    provider: str | None = None
    model: str | None = None
    duration: float | None = None  # seconds

    @property
    def success(self) -> bool:
        return self.parse_error is None


class VlmClient(Protocol):
    """Collaborator that sends an image to the vision model and returns its payload."""

    def analyze(self, image: Path) -> Awaitable[dict[str, Any]]: ...


def check_image_upload(path: Path, max_bytes: int = IMAGE_MAX_FILE_SIZE) -> None:
    check_upload(path, IMAGE_EXTENSIONS, max_bytes)


def _first(item: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, "", 0):
            return value
    return None


def normalize_item(item: dict[str, Any]) -> VlmItem:
    """Map one raw item (any of the synonym keys) onto VlmItem.

    Quantity defaults to 1 when the model omits it.
    """
    quantity = parse_number(_first(item, ITEM_KEYS["quantity"]))
    return VlmItem(
        detail_name=parse_string(_first(item, ITEM_KEYS["detail_name"])),
        height=parse_number(_first(item, ITEM_KEYS["height"])),
        width=parse_number(_first(item, ITEM_KEYS["width"])),
        quantity=quantity if quantity else 1,
        price=parse_number(_first(item, ITEM_KEYS["price"])),
        edge=parse_string(_first(item, ITEM_KEYS["edge"])),
        note=parse_string(_first(item, ITEM_KEYS["note"])),
        film=parse_string(_first(item, ITEM_KEYS["film"])),
        milling=parse_string(_first(item, ITEM_KEYS["milling"])),
        material=parse_string(_first(item, ITEM_KEYS["material"])),
    )


def _items_from_content(content: str) -> list[Any]:
    match = _FENCED_JSON.search(content) or _BARE_JSON.search(content)
    if not match:
        raise ValueError("no JSON found in response")
    parsed = json.loads(match.group(1))
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return parsed.get("items") or parsed.get("details") or []
    raise ValueError(f"unexpected JSON type: {type(parsed).__name__}")


def parse_vlm_response(payload: dict[str, Any]) -> VlmImportResult:
    """Turn a vision-model payload into a VlmImportResult.

    A payload with ``success: false`` is a decode failure of the source.
    Unparseable content is not: it yields an empty result with
    ``parse_error`` set, so the operator sees what the model answered.

    Raises:
        SourceDecodeError: the analysis itself failed
    """
    if payload.get("success") is False:
        raise SourceDecodeError(f"image analysis failed: {payload.get('error') or 'unknown error'}")

    meta = {
        "provider": payload.get("provider"),
        "model": payload.get("model"),
        "duration": parse_number(payload.get("duration")),
    }
    content = payload.get("content")

    raw_items = payload.get("items")
    if isinstance(raw_items, list):
        items = [normalize_item(i) for i in raw_items if isinstance(i, dict)]
        return VlmImportResult(items=items, raw_content=content, **meta)

    if not content:
        return VlmImportResult(parse_error="empty response content", **meta)
    try:
        raw = _items_from_content(content)
    except (ValueError, json.JSONDecodeError) as e:
        logger.warning(f"vision model response not parsed: {e}")
        return VlmImportResult(raw_content=content, parse_error=str(e), **meta)
    items = [normalize_item(i) for i in raw if isinstance(i, dict)]
    return VlmImportResult(items=items, raw_content=content, **meta)


async def analyze_image(client: VlmClient, path: Path, max_bytes: int = IMAGE_MAX_FILE_SIZE) -> VlmImportResult:
    """Check the photo, send it to the vision model and parse the answer.

    The result is what ``ImportWizard.upload`` awaits on the image path.

    Raises:
        SourceDecodeError: wrong type / too large / client failure / failed analysis
    """
    check_image_upload(path, max_bytes)
    try:
        payload = await client.analyze(path)
    except Exception as e:  # transport errors of the client (network, timeout, HTTP)
        raise SourceDecodeError(f"image analysis failed for {path.name}: {e}") from e
    result = parse_vlm_response(payload)
    logger.info(f"{path.name}: {len(result.items)} item(s) from {result.model or 'vision model'}")
    return result


def items_to_import_rows(items: list[VlmItem]) -> list[ImportRow]:
    """1:1 mapping of detected items onto ImportRow."""
    return [
        ImportRow(
            source_row_index=index,
            height=item.height or None,
            width=item.width or None,
            quantity=item.quantity or 1,
            edge_type_name=item.edge,
            film_name=item.film,
            material_name=item.material,
            milling_type_name=item.milling,
            note=item.note,
            detail_name=item.detail_name,
        )
        for index, item in enumerate(items)
    ]
