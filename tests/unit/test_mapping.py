from datetime import datetime, timezone

import pytest

from belfiore_sync.common.models import Discriminator, FieldSpec, MappingProfile
from belfiore_sync.pipeline.mapping import (
    REJECT_EMPTY_KEY,
    REJECT_INVALID_KEY,
    REJECT_MISSING_REQUIRED,
    REJECT_TYPE_MISMATCH,
    RecordMapper,
    bool_s_n,
    clean_string,
    date_dmy_slash,
    guess_item_type,
    lookup,
)

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

COMUNE_MAPPING = MappingProfile(
    fields={
        "codice_catastale": FieldSpec(column="CODICE"),
        "denominazione": FieldSpec(column="DESCR_I"),
        "denominazione_de": FieldSpec(column="DESCR_D"),
        "cap": FieldSpec(column="CAP"),
        "sigla_provincia": FieldSpec(column="SIGLA"),
        "codice_istat": FieldSpec(column="COM_CODICE"),
        "valid_to": FieldSpec(column="DATA_FINE", transform="date_dmy_slash"),
    },
    defaults={"item_type": "comune", "stato": "IT", "is_foreign_state": False, "fonte": "CSV"},
)

STATO_MAPPING = MappingProfile(
    fields={
        "codice_catastale": FieldSpec(column="CODAT"),
        "denominazione": FieldSpec(column="DENOMINAZIONEISTAT", fallback_columns=("DENOMINAZIONE",)),
        "denominazione_en": FieldSpec(column="DENOMINAZIONEISTAT_EN"),
        "cittadinanza": FieldSpec(column="CITTADINANZA", transform="bool_s_n"),
        "nascita": FieldSpec(column="NASCITA", transform="bool_s_n"),
        "tipo": FieldSpec(column="TIPO", default="Stato"),
        "valid_from": FieldSpec(column="DATAINIZIOVALIDITA", transform="date_dmy_slash"),
    },
    defaults={"item_type": "stato", "is_foreign_state": True, "fonte": "DB"},
)


def comune_row(**overrides):
    row = {
        "codice": "H501",
        "descr_i": "ROMA",
        "descr_d": "ROM",
        "cap": "00100",
        "sigla": "RM",
        "com_codice": "058091",
        "data_fine": "",
    }
    row.update(overrides)
    return row


def test_transforms():
    assert date_dmy_slash("31/12/2020") == "2020-12-31"
    assert date_dmy_slash("2020-12-31") is None
    assert date_dmy_slash("") is None
    assert date_dmy_slash("31/02/2020") is None
    assert bool_s_n("S") is True
    assert bool_s_n(" s ") is True
    assert bool_s_n("N") is False
    assert bool_s_n(None) is False


def test_clean_string_folds_lines_and_removes_commas():
    assert clean_string("  ROMA,\n  CAPITALE\x07 ") == "ROMA CAPITALE"


def test_lookup_is_case_insensitive():
    row = {"codice": "H501", "Mixed": "x"}
    assert lookup(row, "CODICE") == "H501"
    assert lookup(row, "mixed") == "x"
    assert lookup(row, "missing") is None
    assert lookup(row, None) is None


def test_guess_item_type_uses_province_code_length():
    assert guess_item_type({"sigla": "RM"}) == "comune"
    assert guess_item_type({"sigla_provincia": "EE1"}) == "stato"
    assert guess_item_type({"denominazione": "FRANCIA"}) == "stato"


def test_comune_row_is_mapped_with_defaults():
    outcome = RecordMapper(COMUNE_MAPPING, now=NOW).map_row(comune_row(), "comune", "url")

    assert outcome.kept
    assert outcome.record == {
        "item_type": "comune",
        "stato": "IT",
        "is_foreign_state": False,
        "fonte": "CSV",
        "codice_catastale": "H501",
        "denominazione": "Roma",
        "denominazione_de": "Rom",
        "cap": "00100",
        "sigla_provincia": "RM",
        "codice_istat": "058091",
        "created_at": NOW,
        "updated_at": NOW,
    }


def test_date_transform_applies_and_key_is_uppercased():
    outcome = RecordMapper(COMUNE_MAPPING, now=NOW).map_row(
        comune_row(codice=" c001 ", data_fine="31/12/2020"), "comune"
    )

    assert outcome.record["codice_catastale"] == "C001"
    assert outcome.record["valid_to"] == "2020-12-31"


def test_fallback_column_and_field_default():
    row = {"DENOMINAZIONE": "FRANCIA", "CODAT": "Z110", "TIPO": ""}

    record = RecordMapper(STATO_MAPPING, now=NOW).map_row(row, "stato").record

    assert record["denominazione"] == "Francia"
    assert record["tipo"] == "Stato"
    assert "denominazione_en" not in record
    assert "valid_from" not in record


def test_boolean_fields_are_coerced():
    mapping = MappingProfile(
        fields={
            "codice_catastale": FieldSpec(column="CODICE"),
            "denominazione": FieldSpec(column="DESCR_I"),
            "residenza": FieldSpec(column="RES"),
        },
        defaults={"is_foreign_state": "0"},
    )

    record = RecordMapper(mapping, now=NOW).build_record({"codice": "H501", "descr_i": "ROMA", "res": "1"}, "comune")

    assert record["is_foreign_state"] is False
    assert record["residenza"] is True


def test_is_foreign_state_defaults_from_sync_type():
    mapping = MappingProfile(fields={"codice_catastale": FieldSpec(column="CODAT")})

    assert RecordMapper(mapping, now=NOW).build_record({"CODAT": "Z110"}, "stato")["is_foreign_state"] is True
    assert RecordMapper(mapping, now=NOW).build_record({"CODAT": "H501"}, "comune")["is_foreign_state"] is False


def test_discriminator_overrides_defaults():
    mapping = MappingProfile(
        fields={"codice_catastale": FieldSpec(column="CODICE"), "denominazione": FieldSpec(column="DESCR_I")},
        defaults={"item_type": "comune", "is_foreign_state": False},
        discriminator=Discriminator(column="TIPO", values={"E": "stato", "C": "comune"}),
    )

    record = RecordMapper(mapping, now=NOW).build_record({"codice": "Z110", "descr_i": "FRANCIA", "tipo": "E"}, "stato")

    assert record["item_type"] == "stato"
    assert record["is_foreign_state"] is True


def test_discriminator_is_not_overridden_by_field_defaults():
    mapping = MappingProfile(
        fields={
            "codice_catastale": FieldSpec(column="CODICE"),
            "denominazione": FieldSpec(column="DESCR_I"),
            "item_type": FieldSpec(column="KIND", default="comune"),
            "is_foreign_state": FieldSpec(column="ESTERO", default=False),
        },
        discriminator=Discriminator(column="TIPO", values={"E": "stato", "C": "comune"}),
    )
    mapper = RecordMapper(mapping, now=NOW)

    record = mapper.build_record({"codice": "Z110", "descr_i": "FRANCIA", "tipo": "E"}, "stato")
    assert (record["item_type"], record["is_foreign_state"]) == ("stato", True)

    undiscriminated = mapper.build_record({"codice": "H501", "descr_i": "ROMA", "kind": "comune"}, "comune")
    assert (undiscriminated["item_type"], undiscriminated["is_foreign_state"]) == ("comune", False)


def test_item_type_aliases_are_applied():
    record = RecordMapper(COMUNE_MAPPING, item_types={"comune": "municipality"}, now=NOW).build_record(
        comune_row(), "comune"
    )

    assert record["item_type"] == "municipality"


@pytest.mark.parametrize("name", ["Italia", "ITALIA", "italia"])
def test_italy_row_becomes_home_country(name):
    row = {"DENOMINAZIONE": name, "CODAT": "Z000"}

    record = RecordMapper(STATO_MAPPING, now=NOW).map_row(row, "stato").record

    assert record["codice_catastale"] == "*"
    assert record["is_foreign_state"] is False
    assert record["cittadinanza"] is True
    assert record["nascita"] is True
    assert record["residenza"] is True
    assert record["denominazione_en"] == "Italy"
    assert record["denominazione_de"] == "Italien"


def test_italy_row_without_code_columns_is_kept():
    outcome = RecordMapper(STATO_MAPPING, now=NOW).map_row({"DENOMINAZIONE": "ITALIA", "TIPO": ""}, "stato")

    assert outcome.kept
    assert outcome.record["codice_catastale"] == "*"
    assert outcome.record["tipo"] == "Stato"


def test_italy_override_only_applies_to_states():
    record = RecordMapper(COMUNE_MAPPING, now=NOW).build_record(comune_row(descr_i="ITALIA"), "comune")

    assert record["codice_catastale"] == "H501"


def test_file_source_type_mismatch_is_rejected():
    mapper = RecordMapper(COMUNE_MAPPING, now=NOW)

    assert mapper.map_row(comune_row(sigla=""), "comune", "file").reason == REJECT_TYPE_MISMATCH
    assert mapper.map_row(comune_row(sigla=""), "comune", "url").kept


def test_missing_required_columns_are_rejected():
    mapper = RecordMapper(COMUNE_MAPPING, now=NOW)
    row = comune_row()
    del row["descr_i"]

    assert mapper.map_row(row, "comune").reason == REJECT_MISSING_REQUIRED
    assert mapper.map_row(["H501", "ROMA"], "comune").reason == REJECT_MISSING_REQUIRED


def test_empty_and_invalid_keys_are_rejected():
    mapper = RecordMapper(COMUNE_MAPPING, now=NOW)

    assert mapper.map_row(comune_row(codice=""), "comune").reason == REJECT_EMPTY_KEY
    assert mapper.map_row(comune_row(codice="H5011"), "comune").reason == REJECT_INVALID_KEY
