from __future__ import annotations

import pytest

from detail_import.config.loader import ValidationLimits
from detail_import.models.reference import ReferenceData
from detail_import.models.rows import ErrorCode, ImportRow, IssueType
from detail_import.services.references import ReferenceResolutionError
from detail_import.services.validation import ImportValidation, batch_replace, compute_stats, validate_row


def test_valid_row_resolves_references(reference_data: ReferenceData):
    row = ImportRow(source_row_index=1, height=2000, width=800, quantity=3, material_name="мдф 16 мм")
    v = validate_row(row, reference_data)
    assert v.is_valid
    assert v.errors == ()
    assert v.warnings == ()
    assert v.material_id == 21
    assert v.edge_type_id is None


def test_zero_height_is_an_error(reference_data: ReferenceData):
    v = validate_row(ImportRow(source_row_index=2, height=0, width=500, quantity=1), reference_data)
    assert not v.is_valid
    assert [(e.field, e.message, e.code) for e in v.errors] == [
        ("height", "height must be greater than 0", ErrorCode.NOT_POSITIVE)
    ]


def test_missing_values_are_required_errors(reference_data: ReferenceData):
    v = validate_row(ImportRow(source_row_index=0, height=100), reference_data)
    assert [e.message for e in v.errors] == ["width is required", "quantity is required"]
    assert all(e.type is IssueType.ERROR for e in v.errors)


def test_limits_and_fractional_quantity_are_warnings(reference_data: ReferenceData):
    row = ImportRow(source_row_index=3, height=3500, width=1600, quantity=2.5)
    v = validate_row(row, reference_data)
    assert v.is_valid
    assert [w.message for w in v.warnings] == [
        "height exceeds 3000mm",
        "width exceeds 1500mm",
        "quantity 2.5 is not an integer and will be rounded",
    ]


def test_limits_come_from_configuration(reference_data: ReferenceData):
    row = ImportRow(source_row_index=0, height=2500, width=100, quantity=1)
    v = validate_row(row, reference_data, ValidationLimits(max_height=2400, max_width=1500))
    assert [w.message for w in v.warnings] == ["height exceeds 2400mm"]


def test_unresolved_reference_is_a_warning(reference_data: ReferenceData):
    row = ImportRow(source_row_index=0, height=100, width=100, quantity=1, edge_type_name="Обкат ПВХ")
    v = validate_row(row, reference_data)
    assert v.is_valid
    assert v.issues_for("edge_type")[0].message == 'edge type not found: "Обкат ПВХ"'
    assert v.issues_for("edge_type")[0].code is ErrorCode.UNRESOLVED_REFERENCE


def test_validate_row_is_pure(reference_data: ReferenceData):
    row = ImportRow(source_row_index=0, height=-1, width=100, quantity=1, film_name="глянец")
    assert validate_row(row, reference_data) == validate_row(row, reference_data)


def _session(reference_data: ReferenceData) -> ImportValidation:
    session = ImportValidation(reference_data)
    session.process_rows(
        [
            ImportRow(source_row_index=1, height=2000, width=800, quantity=3, edge_type_name="Обкат ПВХ"),
            ImportRow(source_row_index=2, height=0, width=500, quantity=1),
            ImportRow(source_row_index=3, height=3500, width=600, quantity=2, edge_type_name="Обкат ПВХ"),
        ]
    )
    return session


def test_stats_and_valid_rows(reference_data: ReferenceData):
    session = _session(reference_data)
    stats = session.stats
    assert (stats.total_rows, stats.valid_rows, stats.error_rows, stats.warning_rows) == (3, 2, 1, 2)
    assert stats.total_quantity == 5
    assert stats.total_area == 9.0
    assert [r.source_row_index for r in session.get_valid_rows()] == [1, 3]
    assert compute_stats([]).total_rows == 0


def test_batch_replace_resolves_every_matching_row(reference_data: ReferenceData):
    session = _session(reference_data)
    unresolved = session.unresolved_refs.edge_types
    assert [(u.original_value, u.count) for u in unresolved] == [("Обкат ПВХ", 2)]

    updated = session.batch_replace_reference("edge_type", "Обкат ПВХ", 7)

    assert updated == 2
    assert session.unresolved_refs.edge_types == []
    rows = session.validated_rows
    assert [r.edge_type_id for r in rows] == [7, None, 7]
    assert rows[0].edge_type_name == "Обкат ПВХ"
    assert rows[0].issues_for("edge_type") == []


def test_batch_replace_function_leaves_input_untouched(reference_data: ReferenceData):
    rows = [
        validate_row(ImportRow(source_row_index=i, height=100, width=100, quantity=1, material_name=name), reference_data)
        for i, name in enumerate(["ЛДСП", "мдф", "ЛДСП"])
    ]
    new_rows, changed = batch_replace(rows, "material", "ЛДСП", 22, reference_data)
    assert changed == 2
    assert [r.material_id for r in new_rows] == [22, rows[1].material_id, 22]
    assert rows[0].material_id is None


def test_batch_replace_rejects_ids_outside_catalog(reference_data: ReferenceData):
    session = _session(reference_data)
    with pytest.raises(ReferenceResolutionError):
        session.batch_replace_reference("edge_type", "Обкат ПВХ", 999)


def test_update_row_revalidates(reference_data: ReferenceData):
    session = _session(reference_data)
    fixed = session.update_row(1, "height", "1500")
    assert fixed.is_valid
    assert session.stats.valid_rows == 3

    broken = session.update_row(0, "quantity", "abc")
    assert broken.errors[0].message == "quantity is required"


def test_update_reference_name_drops_old_id(reference_data: ReferenceData):
    session = _session(reference_data)
    session.batch_replace_reference("edge_type", "Обкат ПВХ", 7)
    row = session.update_row(0, "edge_type_name", "ПВХ 1мм")
    assert row.edge_type_id == 5


def test_update_row_id_must_be_in_catalog(reference_data: ReferenceData):
    session = _session(reference_data)
    assert session.update_row(0, "edge_type_id", 5).edge_type_id == 5
    with pytest.raises(ReferenceResolutionError):
        session.update_row(0, "edge_type_id", 42)
    with pytest.raises(KeyError):
        session.update_row(0, "color", "red")


def test_update_row_id_blank_clears_and_non_numeric_is_rejected(reference_data: ReferenceData):
    session = _session(reference_data)
    session.update_row(0, "edge_type_id", 5)
    row = session.update_row(0, "edge_type_id", "")
    assert row.edge_type_id is None
    assert session.update_row(0, "edge_type_id", "7").edge_type_id == 7
    with pytest.raises(ReferenceResolutionError):
        session.update_row(0, "edge_type_id", "abc")
    with pytest.raises(ReferenceResolutionError):
        session.update_row(0, "edge_type_id", 5.5)


def test_remove_row_and_reset(reference_data: ReferenceData):
    session = _session(reference_data)
    session.remove_row(1)
    assert len(session) == 2
    assert session.stats.error_rows == 0
    session.reset()
    assert session.validated_rows == []


def test_new_catalogs_revalidate_rows(reference_data: ReferenceData):
    session = ImportValidation()
    session.process_rows([ImportRow(source_row_index=0, height=1, width=1, quantity=1, film_name="белый глянец")])
    assert session.validated_rows[0].film_id is None
    session.set_reference_data(reference_data)
    assert session.validated_rows[0].film_id == 11
