from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from detail_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, default_config, load_config
from detail_import.db.catalogs import CatalogLoadError, load_reference_data_async
from detail_import.excel.reader import SourceDecodeError, read_workbook
from detail_import.logging.error_log import ErrorLogBuffer
from detail_import.logging.init import log_summary, setup_logging
from detail_import.models.cells import parse_string
from detail_import.models.reference import ReferenceData
from detail_import.services.runner import JsonLinesOrderStore, RunOptions, process_files
from detail_import.services.selection import parse_range_reference
from detail_import.services.summary import render_summary_line

"""CLI entrypoint: import detail lists from spreadsheets.

    python -m detail_import.cli orders/kitchen.xlsx --range A1:F20 --output out.jsonl

Catalogs come from PostgreSQL. When the connection fails, or with
DISABLE_DB_CONNECT=1, the run continues with empty catalogs (mock mode) and
unresolved references are committed with the configured default ids.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_OUTPUT = Path("output/details.jsonl")
INSPECT_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values take precedence over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="detail_import",
        description="Import detail lists (height, width, quantity, ...) from spreadsheets",
    )
    p.add_argument("files", nargs="*", type=Path, help="Spreadsheet files (.xlsx, .xls, .xlsm, .xlsb)")
    p.add_argument("--sheet", help="Sheet to import (default: first sheet)")
    p.add_argument("--range", dest="range_ref", help="Cell range to import, e.g. A1:F20 (default: whole used area)")
    p.add_argument("--no-header", action="store_true", help="The range has no header row")
    p.add_argument("--config", type=Path, help=f"Config file (default: {DEFAULT_CONFIG_PATH} when present)")
    p.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="JSON lines file for imported details")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet names & first rows then exit")
    return p.parse_args(argv)


def _load_run_config(path: Path | None) -> ImportConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _inspect_data(files: list[Path], cfg: ImportConfig) -> int:
    for f in files:
        print(f"FILE: {f.name}")
        try:
            workbook = read_workbook(f, max_bytes=cfg.uploads.spreadsheet_max_bytes)
        except SourceDecodeError as e:
            print(f"  read_error: {e}")
            continue
        for name in workbook.sheet_names:
            matrix = workbook.sheet(name)
            print(f"  SHEET: {name} rows={matrix.row_count} cols={matrix.col_count}")
            for row in matrix.rows[:INSPECT_ROWS]:
                print("    ", [parse_string(v) for v in row])
    return EXIT_SUCCESS_ALL


def _load_catalogs(cfg: ImportConfig, logger: logging.Logger) -> tuple[ReferenceData, str]:
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return ReferenceData(), "mock"
    try:
        return asyncio.run(load_reference_data_async(cfg.database)), "live"
    except CatalogLoadError as e:
        logger.info(f"catalogs unavailable -> mock mode: {e}")
        return ReferenceData(), "mock"


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an empty list must not fall back to sys.argv (pytest flags)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = _load_run_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    files: list[Path] = args.files
    if not files:
        logger.error("no input files given")
        return EXIT_FATAL
    if args.range_ref:
        try:
            parse_range_reference(args.range_ref)
        except ValueError as e:
            logger.error(f"--range: {e}")
            return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(files, cfg)

    reference_data, db_mode = _load_catalogs(cfg, logger)
    store = JsonLinesOrderStore(args.output)
    error_log = ErrorLogBuffer()
    options = RunOptions(sheet=args.sheet, range_ref=args.range_ref, has_header_row=not args.no_header)

    result = asyncio.run(process_files(files, cfg, reference_data, store, error_log, options))

    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"row issues written to {log_path}")
    logger.info(f"mode={db_mode} imported={result.imported} output={args.output}")

    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result).removeprefix("SUMMARY "))

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
