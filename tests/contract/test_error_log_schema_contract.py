from __future__ import annotations

import json
import re
from pathlib import Path

from detail_import.cli import main as cli_main
from detail_import.models.error_record import ErrorRecord

"""Error log contract: JSON Lines with a fixed key set, one file per run."""

EXPECTED_KEYS = {"timestamp", "file", "source", "row", "field", "error_type", "code", "message"}
TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$")


def test_error_record_has_fixed_keys():
    rec = ErrorRecord.create("a.xlsx", "Лист1", 3, "height", "error", "NOT_POSITIVE", "height must be greater than 0")
    data = json.loads(rec.to_json_line())
    assert set(data) == EXPECTED_KEYS
    assert TS_RE.match(data["timestamp"])


def test_cli_run_writes_row_issues(temp_workdir: Path, excel_factory):
    path = excel_factory(
        temp_workdir / "data" / "order.xlsx",
        {"Лист1": [["Высота", "Ширина", "Кол-во", "Обкат"], [2000, 800, 3, "Обкат ПВХ"], [0, 500, 1, None]]},
    )
    broken = temp_workdir / "data" / "broken.xlsx"
    broken.write_bytes(b"garbage")

    code = cli_main([str(path), str(broken)])

    assert code == 2
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert all(set(r) == EXPECTED_KEYS for r in records)

    by_code = {r["code"]: r for r in records}
    # catalogs are empty in mock mode, so the edge type stays unresolved
    assert by_code["UNRESOLVED_REFERENCE"]["row"] == 2
    assert by_code["UNRESOLVED_REFERENCE"]["error_type"] == "warning"
    assert by_code["NOT_POSITIVE"]["row"] == 3
    assert by_code["NOT_POSITIVE"]["source"] == "Лист1"
    assert by_code["SOURCE_DECODE"]["file"] == "broken.xlsx"
    assert by_code["SOURCE_DECODE"]["row"] == -1
