from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import psycopg2

from ..config.loader import DatabaseConfig
from ..models.reference import ReferenceData
from ..services.references import sort_catalog

"""Catalog loader: active edge types, films, materials and milling types.

Each catalog is one SELECT over its table filtered to ``is_active`` and
projected to ``{id, name, priority}``; ``sort_catalog`` then fixes the order
(sort_order, name, id) so reference resolution is reproducible.

Connection parameters, highest priority first:
    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. ``database`` section of config/import.yml
"""

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogLoadError",
    "CatalogQuery",
    "CATALOG_QUERIES",
    "resolve_dsn",
    "db_cursor",
    "fetch_catalog",
    "load_reference_data",
    "load_reference_data_async",
]


class CatalogLoadError(Exception):
    pass


@dataclass(frozen=True)
class CatalogQuery:
    catalog: str  # ReferenceData attribute
    table: str
    id_column: str
    name_column: str
    order_column: str | None = None

    def sql(self) -> str:
        order = self.order_column or "NULL"
        return (
            f"SELECT {self.id_column} AS id, {self.name_column} AS name, {order} AS priority "
            f"FROM {self.table} WHERE is_active = TRUE"
        )


CATALOG_QUERIES: tuple[CatalogQuery, ...] = (
    CatalogQuery("edge_types", "edge_types", "edge_type_id", "edge_type_name", "sort_order"),
    CatalogQuery("films", "films", "film_id", "film_name"),
    CatalogQuery("materials", "materials", "material_id", "material_name"),
    CatalogQuery("milling_types", "milling_types", "milling_type_id", "milling_type_name", "sort_order"),
)


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_cursor(db_cfg: DatabaseConfig) -> Iterator[Any]:
    """Read-only psycopg2 cursor; the connection is always closed on exit.

    Raises:
        CatalogLoadError: connection failed
    """
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise CatalogLoadError(f"database connection failed: {e}") from e
    try:
        conn.set_session(readonly=True, autocommit=True)
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def fetch_catalog(cursor: Any, query: CatalogQuery) -> list[dict[str, Any]]:
    try:
        cursor.execute(query.sql())
        rows = cursor.fetchall()
    except psycopg2.Error as e:
        raise CatalogLoadError(f"failed to load {query.table}: {e}") from e
    return [{"id": r[0], "name": r[1], "priority": r[2]} for r in rows]


def load_reference_data(cursor: Any) -> ReferenceData:
    """Load all four catalogs through ``cursor``.

    Raises:
        CatalogLoadError: any query failed
    """
    catalogs = {q.catalog: sort_catalog(fetch_catalog(cursor, q)) for q in CATALOG_QUERIES}
    data = ReferenceData.from_lists(**catalogs)
    logger.debug(
        "catalogs loaded: "
        + " ".join(f"{name}={len(items)}" for name, items in catalogs.items())
    )
    return data


def _load_blocking(db_cfg: DatabaseConfig) -> ReferenceData:
    with db_cursor(db_cfg) as cur:
        return load_reference_data(cur)


async def load_reference_data_async(db_cfg: DatabaseConfig) -> ReferenceData:
    """Connect and load catalogs off the event loop."""
    return await asyncio.to_thread(_load_blocking, db_cfg)
