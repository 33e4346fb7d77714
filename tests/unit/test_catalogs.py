from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from detail_import.config.loader import DatabaseConfig
from detail_import.db.catalogs import (
    CATALOG_QUERIES,
    CatalogLoadError,
    load_reference_data,
    load_reference_data_async,
    resolve_dsn,
)
from detail_import.models.reference import ReferenceItem


def _cursor(results: dict[str, list[tuple]]) -> MagicMock:
    cur = MagicMock()
    state = {}

    def execute(sql):
        state["table"] = next(t for t in results if f"FROM {t} " in sql)

    cur.execute.side_effect = execute
    cur.fetchall.side_effect = lambda: results[state["table"]]
    return cur


CATALOG_ROWS = {
    "edge_types": [(2, "Кромка 2мм", 20), (1, "ПВХ 1мм", 10)],
    "films": [(11, "Белый глянец", None)],
    "materials": [(22, "МДФ 19 мм", None), (21, "МДФ 16 мм", None)],
    "milling_types": [],
}


def test_queries_select_active_rows_only():
    for q in CATALOG_QUERIES:
        assert "WHERE is_active = TRUE" in q.sql()
        assert q.sql().startswith(f"SELECT {q.id_column} AS id, {q.name_column} AS name")


def test_load_reference_data_sorts_catalogs():
    data = load_reference_data(_cursor(CATALOG_ROWS))
    assert data.edge_types == (ReferenceItem(1, "ПВХ 1мм"), ReferenceItem(2, "Кромка 2мм"))
    assert [m.id for m in data.materials] == [21, 22]
    assert data.milling_types == ()


def test_query_failure_becomes_catalog_error():
    cur = MagicMock()
    cur.execute.side_effect = psycopg2.ProgrammingError("relation \"films\" does not exist")
    with pytest.raises(CatalogLoadError, match="failed to load"):
        load_reference_data(cur)


def test_resolve_dsn_prefers_environment(monkeypatch):
    monkeypatch.delenv("PGDSN", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/orders")
    assert resolve_dsn(DatabaseConfig(host="ignored")) == "postgresql://u:p@db/orders"


def test_resolve_dsn_falls_back_to_config(monkeypatch):
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PGUSER", "envuser")
    dsn = resolve_dsn(DatabaseConfig(host="db", port=6432, user="cfguser", password="pw", database="orders"))
    assert dsn == "host=db port=6432 user=envuser dbname=orders password=pw"


def test_connection_failure_async():
    with patch("detail_import.db.catalogs.psycopg2.connect", side_effect=psycopg2.OperationalError("refused")):
        with pytest.raises(CatalogLoadError, match="connection failed"):
            asyncio.run(load_reference_data_async(DatabaseConfig()))


def test_async_load_closes_connection():
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = _cursor(CATALOG_ROWS)
    with patch("detail_import.db.catalogs.psycopg2.connect", return_value=conn):
        data = asyncio.run(load_reference_data_async(DatabaseConfig()))
    assert len(data.films) == 1
    conn.close.assert_called_once()
