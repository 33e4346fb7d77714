from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.mapping import FIELD_KEYWORDS, ImportableField

"""Configuration loader for the detail import pipeline.

Responsibilities:
- Load YAML config (config/import.yml by default)
- Validate against the bundled JSON schema
- Apply defaults for every missing section / key

Environment variables for the database connection are applied later by the
CLI; the ``database`` section is only a fallback.
"""

SCHEMA_PATH = Path(__file__).with_name("import_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

MB = 1024 * 1024


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportDefaults:
    """Ids substituted at commit time for references left unresolved."""
    edge_type_id: int | None = 1
    film_id: int | None = None  # плёнка необязательна, по умолчанию пусто
    material_id: int | None = 1
    milling_type_id: int | None = 1
    priority: int = 100


@dataclass(frozen=True)
class ValidationLimits:
    """Dimension thresholds (mm) above which a row gets a warning."""
    max_height: float = 3000
    max_width: float = 1500


@dataclass(frozen=True)
class UploadLimits:
    spreadsheet_max_bytes: int = 10 * MB
    pdf_max_bytes: int = 20 * MB
    image_max_bytes: int = 10 * MB


@dataclass(frozen=True)
class ImportConfig:
    defaults: ImportDefaults = field(default_factory=ImportDefaults)
    limits: ValidationLimits = field(default_factory=ValidationLimits)
    uploads: UploadLimits = field(default_factory=UploadLimits)
    field_keywords: dict[ImportableField, tuple[str, ...]] = field(
        default_factory=lambda: dict(FIELD_KEYWORDS)
    )
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def default_config() -> ImportConfig:
    return ImportConfig()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or not valid JSON, or the data
            violates the schema (unknown keys, wrong types, bad ranges).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_keywords(raw: dict[str, list[str]]) -> dict[ImportableField, tuple[str, ...]]:
    keywords = dict(FIELD_KEYWORDS)
    for name, words in raw.items():
        # overrides replace the built-in list for that field
        keywords[ImportableField(name)] = tuple(w.strip().lower() for w in words if w.strip())
    return keywords


def build_config(data: dict[str, Any]) -> ImportConfig:
    """Build ImportConfig from already-parsed (and validated) data."""
    base = ImportConfig()
    d_raw = data.get("defaults") or {}
    l_raw = data.get("limits") or {}
    u_raw = data.get("uploads") or {}
    db_raw = data.get("database") or {}

    defaults = ImportDefaults(
        edge_type_id=d_raw.get("edge_type_id", base.defaults.edge_type_id),
        film_id=d_raw.get("film_id", base.defaults.film_id),
        material_id=d_raw.get("material_id", base.defaults.material_id),
        milling_type_id=d_raw.get("milling_type_id", base.defaults.milling_type_id),
        priority=d_raw.get("priority", base.defaults.priority),
    )
    limits = ValidationLimits(
        max_height=l_raw.get("max_height", base.limits.max_height),
        max_width=l_raw.get("max_width", base.limits.max_width),
    )

    def _bytes(key: str, fallback: int) -> int:
        if key not in u_raw:
            return fallback
        return int(u_raw[key] * MB)

    uploads = UploadLimits(
        spreadsheet_max_bytes=_bytes("spreadsheet_max_mb", base.uploads.spreadsheet_max_bytes),
        pdf_max_bytes=_bytes("pdf_max_mb", base.uploads.pdf_max_bytes),
        image_max_bytes=_bytes("image_max_mb", base.uploads.image_max_bytes),
    )
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        defaults=defaults,
        limits=limits,
        uploads=uploads,
        field_keywords=_build_keywords(data.get("field_keywords") or {}),
        database=db,
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)
    return build_config(data)
