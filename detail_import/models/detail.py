from __future__ import annotations

import math
from dataclasses import asdict, dataclass

"""Committed detail records and session statistics.

DetailRecord is the only durable output of an import: one record per accepted
row, appended to the order-form store.
"""

__all__ = [
    "DetailRecord",
    "ImportStats",
    "compute_area",
]


def compute_area(height: float, width: float, quantity: float) -> float:
    """Total area in m², rounded up to two decimals.

    ceil(h * w * q / 10000) / 100, with h and w in millimetres.
    """
    area_mm2 = height * width * quantity
    if area_mm2 <= 0:
        return 0.0
    return math.ceil(round(area_mm2 / 10000, 9)) / 100


@dataclass(frozen=True)
class DetailRecord:
    height: float
    width: float
    quantity: int
    area: float  # m²
    edge_type_id: int | None
    film_id: int | None
    material_id: int | None
    milling_type_id: int | None
    priority: int
    note: str | None = None
    detail_name: str | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ImportStats:
    total_rows: int
    valid_rows: int
    error_rows: int
    warning_rows: int
    total_quantity: float
    total_area: float  # m², valid rows only
