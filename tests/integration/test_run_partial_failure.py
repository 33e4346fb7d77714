from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from detail_import.cli import main as cli_main
from detail_import.db.catalogs import CatalogLoadError
from detail_import.models.reference import ReferenceData, ReferenceItem

"""Runs where some files fail, and catalog loading in live / fallback mode."""


def test_file_without_valid_rows_counts_as_failed(temp_workdir: Path, excel_factory, capsys):
    good = excel_factory(temp_workdir / "data" / "good.xlsx", {"S": [["Высота", "Ширина", "Кол-во"], [100, 100, 1]]})
    bad = excel_factory(temp_workdir / "data" / "bad.xlsx", {"S": [["Высота", "Ширина", "Кол-во"], [0, 100, 1]]})

    code = cli_main([str(good), str(bad), "--output", "out.jsonl"])
    out = capsys.readouterr().out

    assert code == 2
    assert "WARN bad.xlsx: no valid rows" in out
    assert "SUMMARY files=1/2 rows=2 valid=1 errors=1 warnings=0 imported=1" in out
    lines = (temp_workdir / "out.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1


def test_live_catalogs_resolve_references(temp_workdir: Path, excel_factory, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    path = excel_factory(
        temp_workdir / "data" / "o.xlsx",
        {"S": [["Высота", "Ширина", "Кол-во", "Материал"], [100, 100, 1, "мдф 16"]]},
    )
    catalogs = ReferenceData.from_lists(materials=[ReferenceItem(21, "МДФ 16 мм")])

    async def fake_load(_db_cfg):
        return catalogs

    with patch("detail_import.cli.__main__.load_reference_data_async", side_effect=fake_load):
        code = cli_main([str(path), "--output", "out.jsonl"])

    assert code == 0
    assert "mode=live" in capsys.readouterr().out
    detail = json.loads((temp_workdir / "out.jsonl").read_text(encoding="utf-8"))
    assert detail["material_id"] == 21


def test_catalog_failure_falls_back_to_mock(temp_workdir: Path, excel_factory, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    path = excel_factory(temp_workdir / "data" / "o.xlsx", {"S": [["Высота", "Ширина", "Кол-во"], [100, 100, 1]]})

    async def failing(_db_cfg):
        raise CatalogLoadError("database connection failed: refused")

    with patch("detail_import.cli.__main__.load_reference_data_async", side_effect=failing):
        code = cli_main([str(path), "--output", "out.jsonl"])

    out = capsys.readouterr().out
    assert code == 0
    assert "catalogs unavailable -> mock mode" in out
    assert "mode=mock" in out
