from datetime import date

import pytest
from sqlalchemy import create_engine

from belfiore_sync.common.errors import StoreError
from belfiore_sync.pipeline.store import SqlAlchemyStore

UPDATE_COLUMNS = ("denominazione", "item_type", "is_foreign_state", "valid_to", "updated_at")


@pytest.fixture()
def store():
    instance = SqlAlchemyStore(create_engine("sqlite://"))
    instance.create_schema()
    yield instance
    instance.dispose()


def comune(code: str, name: str, **extra):
    return {"codice_catastale": code, "denominazione": name, "item_type": "comune", "is_foreign_state": False, **extra}


def test_upsert_is_idempotent_by_natural_key(store):
    rows = [comune("H501", "Roma"), comune("A952", "Bolzano")]

    assert store.upsert(rows, ("codice_catastale",), UPDATE_COLUMNS) == 2
    store.upsert(rows, ("codice_catastale",), UPDATE_COLUMNS)

    assert store.count() == 2


def test_upsert_updates_only_listed_columns(store):
    store.upsert([comune("H501", "Roma", cap="00100")], ("codice_catastale",), UPDATE_COLUMNS)
    store.upsert([comune("H501", "Roma Capitale", cap="00199")], ("codice_catastale",), UPDATE_COLUMNS)

    row = store.get("H501")
    assert row["denominazione"] == "Roma Capitale"
    assert row["cap"] == "00100"


def test_upsert_without_update_columns_keeps_existing_rows(store):
    store.upsert([comune("H501", "Roma")], ("codice_catastale",), ())
    store.upsert([comune("H501", "Altro")], ("codice_catastale",), ())

    assert store.get("H501")["denominazione"] == "Roma"


def test_upsert_accepts_rows_with_different_columns(store):
    rows = [
        comune("H501", "Roma", valid_to="2020-12-31"),
        {"codice_catastale": "Z110", "denominazione": "Francia", "item_type": "stato", "is_foreign_state": True},
    ]

    assert store.upsert(rows, ("codice_catastale",), UPDATE_COLUMNS) == 2
    assert store.get("H501")["valid_to"] == date(2020, 12, 31)
    assert store.get("Z110")["cittadinanza"] is False


def test_delete_targets_item_type_and_foreign_flag(store):
    store.upsert(
        [
            comune("H501", "Roma"),
            {"codice_catastale": "Z110", "denominazione": "Francia", "item_type": "stato", "is_foreign_state": True},
        ]
    )

    assert store.delete("comune", False) == 1
    assert store.count(item_type="comune") == 0
    assert store.count(item_type="stato", is_foreign_state=True) == 1


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert([comune("H501", "Roma")])
            raise RuntimeError("boom")

    assert store.count() == 0


def test_constraint_violation_raises_store_error(store):
    with pytest.raises(StoreError):
        store.upsert([{"codice_catastale": "Z999", "item_type": "stato"}])


def test_get_missing_returns_none(store):
    assert store.get("XXXX") is None


def test_invalid_date_value_raises_store_error(store):
    with pytest.raises(StoreError):
        store.upsert([comune("H501", "Roma", valid_to="2020-02-31")])

    assert store.count() == 0
