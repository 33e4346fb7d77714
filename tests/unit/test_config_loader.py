from __future__ import annotations

from pathlib import Path

import pytest

from detail_import.config.loader import MB, ConfigError, default_config, load_config
from detail_import.models.mapping import FIELD_KEYWORDS, ImportableField


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.defaults.edge_type_id == 1
    assert cfg.defaults.material_id == 2
    assert cfg.defaults.milling_type_id == 3
    assert cfg.defaults.film_id is None
    assert cfg.limits.max_height == 3000
    assert cfg.uploads.spreadsheet_max_bytes == 5 * MB
    # unspecified upload limits keep their defaults
    assert cfg.uploads.pdf_max_bytes == 20 * MB
    assert cfg.database.user == "appuser"
    assert cfg.database.database == "orders"


def test_field_keywords_override_one_field(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.field_keywords[ImportableField.NOTE] == ("примечание", "комментарий")
    assert cfg.field_keywords[ImportableField.HEIGHT] == FIELD_KEYWORDS[ImportableField.HEIGHT]


def test_empty_file_gives_defaults(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("", encoding="utf-8")
    assert load_config(p) == default_config()


def test_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "config" / "nope.yml")


def test_invalid_yaml(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("defaults: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(p)


def test_root_must_be_mapping(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(p)


def test_default_config_values():
    cfg = default_config()
    assert cfg.defaults.priority == 100
    assert cfg.limits.max_width == 1500
    assert cfg.uploads.image_max_bytes == 10 * MB
