# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pandas as pd
import pytest

from detail_import.logging.init import reset_logging
from detail_import.models.cells import CellMatrix, Workbook
from detail_import.models.reference import ReferenceData, ReferenceItem


@pytest.fixture(autouse=True)
def _fresh_logging():
    # the app logger binds sys.stdout on setup; capsys swaps it per test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """defaults:
  edge_type_id: 1
  material_id: 2
  milling_type_id: 3
  film_id: null
  priority: 100
limits:
  max_height: 3000
  max_width: 1500
uploads:
  spreadsheet_max_mb: 5
field_keywords:
  note: [примечание, комментарий]
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: orders
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def reference_data() -> ReferenceData:
    return ReferenceData.from_lists(
        edge_types=[ReferenceItem(5, "ПВХ 1мм"), ReferenceItem(7, "Кромка 2мм")],
        films=[ReferenceItem(11, "Белый глянец")],
        materials=[ReferenceItem(21, "МДФ 16 мм"), ReferenceItem(22, "МДФ 19 мм")],
        milling_types=[ReferenceItem(31, "Модерн")],
    )


@pytest.fixture()
def order_rows() -> list[list[object]]:
    return [
        ["Высота", "Ширина", "Кол-во", "Обкат"],
        [2000, 800, 3, "Обкат ПВХ"],
        [0, 500, 1, None],
        [3500, 600, 2, "Обкат ПВХ"],
    ]


def make_workbook(rows: list[list[object]], file_name: str = "order.xlsx", sheet: str = "Sheet1") -> Workbook:
    matrix = CellMatrix.from_rows(sheet, rows)
    return Workbook(file_name=file_name, sheet_names=(sheet,), sheets={sheet: matrix})


def make_excel_file(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write a real .xlsx with one raw (headerless) block per sheet."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture()
def order_workbook(order_rows: list[list[object]]) -> Workbook:
    return make_workbook(order_rows)


@pytest.fixture()
def workbook_factory():
    return make_workbook


@pytest.fixture()
def excel_factory():
    return make_excel_file
