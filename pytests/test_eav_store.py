from __future__ import annotations

import sqlite3

import pytest
from sqlalchemy import delete, func, select

from models.attributes import Attribute
from models.entities import Entity
from support.eav_store import EavStore, EntityHandle
from support.errors import PreconditionError, ResourceError
from pytests.common import seed_store


def _entity_rows(store: EavStore, value: str) -> int:
    with store.engine.connect() as conn:
        return conn.execute(
            select(func.count()).select_from(Entity).where(Entity.value == value)
        ).scalar_one()


def _attribute_count(store: EavStore) -> int:
    with store.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(Attribute)).scalar_one()


def test_select_or_create_is_idempotent(store):
    first = store.select_or_create("x")
    second = store.select_or_create("x")

    assert first == second
    assert isinstance(first, EntityHandle)
    assert _entity_rows(store, "x") == 1
    assert store.count() == 1


def test_select_or_create_moves_cursor_to_existing_entity(store):
    x = store.select_or_create("x")
    store.select_or_create("y")
    assert store.current_entity.value == "y"

    again = store.select_or_create("x")
    assert again.id == x.id
    assert store.current_entity == x


def test_attach_without_entity_raises_and_writes_nothing(store):
    with pytest.raises(PreconditionError):
        store.attach("color", "red")
    with pytest.raises(PreconditionError):
        store.attach_batch({"color": "red"})

    assert _attribute_count(store) == 0


def test_attach_defaults_to_cursor(store):
    store.select_or_create("apple")
    store.attach("color", "red")

    records = list(store.iter_records())
    assert records == [{"id": str(store.current_entity.id), "color": "red"}]


def test_attach_with_explicit_handle_ignores_cursor(store):
    apple = store.select_or_create("apple")
    store.select_or_create("pear")

    store.attach("color", "red", entity=apple)
    store.attach("color", "green")

    by_id = {r["id"]: r for r in store.iter_records()}
    assert by_id[str(apple.id)]["color"] == "red"
    assert by_id[str(store.current_entity.id)]["color"] == "green"


def test_attach_batch_reports_partial_failure(store):
    store.select_or_create("apple")

    # sqlite3 cannot bind a dict, so only that pair fails.
    res = store.attach_batch([("color", "red"), ("bad", {"nested": 1}), ("shape", "round")])

    assert res.succeeded == 2
    assert res.failed_keys == ["bad"]
    assert not res.ok
    assert _attribute_count(store) == 2


def test_attach_batch_for_unknown_entity_fails_every_pair(store):
    res = store.attach_batch({"color": "red", "shape": "round"}, entity=9999)

    assert res.succeeded == 0
    assert res.failed_keys == ["color", "shape"]
    assert _attribute_count(store) == 0


def test_count_and_list_ids_newest_first(store):
    ids = seed_store(store, {"a": {}, "b": {}, "c": {}})

    assert store.count() == 3
    assert store.list_ids() == sorted(ids.values(), reverse=True)


def test_distinct_keys_priority_first_without_repeats(fruit_store):
    assert fruit_store.distinct_keys(["shape"]) == ["shape", "color"]


def test_distinct_keys_dedups_priority_and_keeps_unknown_priority(fruit_store):
    cols = fruit_store.distinct_keys(["size", "shape", "size"])

    assert cols[:2] == ["size", "shape"]
    assert sorted(cols) == ["color", "shape", "size"]


def test_distinct_keys_is_deterministic(fruit_store):
    fruit_store.select_or_create("plum")
    fruit_store.attach("taste", "sweet")
    fruit_store.attach("color", "purple")

    first = fruit_store.distinct_keys([])
    assert first == fruit_store.distinct_keys([])
    assert sorted(first) == ["color", "shape", "taste"]


def test_store_keeps_duplicate_keys(store):
    store.select_or_create("x")
    store.attach("color", "red")
    store.attach("color", "blue")

    assert _attribute_count(store) == 2
    assert list(store.iter_records())[0]["color"] == "blue"


def test_deleting_entity_cascades_to_attributes(fruit_store):
    with fruit_store.engine.begin() as conn:
        conn.execute(delete(Entity).where(Entity.value == "pear"))

    assert _attribute_count(fruit_store) == 1


def test_open_recreates_existing_file(tmp_path):
    path = tmp_path / "store.sqlite"
    with EavStore(path) as s:
        seed_store(s, {"apple": {"color": "red"}})
        assert s.count() == 1

    with EavStore(path) as s:
        assert s.count() == 0
        assert s.distinct_keys() == []


def test_read_only_engine_cannot_write(fruit_store):
    engine = fruit_store.read_only_engine()
    try:
        with engine.connect() as conn:
            assert conn.exec_driver_sql("SELECT count(*) FROM entities").scalar_one() == 2
            with pytest.raises(Exception) as excinfo:
                conn.exec_driver_sql("INSERT INTO entities (value) VALUES ('plum')")
        assert isinstance(excinfo.value.orig, sqlite3.OperationalError)
    finally:
        engine.dispose()


def test_unwritable_location_is_a_resource_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(ResourceError):
        EavStore(blocker / "store.sqlite")


def test_writer_connections_always_enforce_foreign_keys(store):
    with store.engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar_one() == 1


def test_tables_use_autoincrement_ids(store):
    con = sqlite3.connect(str(store.db_file))
    try:
        ddl = dict(con.execute("SELECT name, sql FROM sqlite_master WHERE type='table'").fetchall())
    finally:
        con.close()

    assert "AUTOINCREMENT" in ddl["entities"]
    assert "AUTOINCREMENT" in ddl["attributes"]
