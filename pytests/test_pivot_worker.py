from __future__ import annotations

from utils.pivot_worker import group_rows, pivot_chunk, project_row
from pytests.common import FRUIT, seed_store


def test_group_rows_last_write_wins_and_keeps_first_appearance_order():
    rows = [
        (2, "color", "red"),
        (2, "color", "blue"),
        (1, "shape", "oval"),
        (2, "size", None),
    ]

    grouped = group_rows(rows)

    assert list(grouped) == [2, 1]
    assert grouped[2] == {"color": "blue", "size": ""}
    assert grouped[1] == {"shape": "oval"}


def test_project_row_fills_missing_with_empty_string():
    row = project_row({"color": "red"}, ["shape", "color", "size"])
    assert row == ["", "red", ""]


def test_pivot_chunk_projects_every_column(fruit_store):
    columns = fruit_store.distinct_keys(["shape"])
    ids = sorted(fruit_store.list_ids())

    res = pivot_chunk(fruit_store.db_file, ids, columns, chunk_index=3)

    assert res.ok
    assert res.index == 3
    assert res.rows == [["", "red"], ["oval", "green"]]
    assert all(len(r) == len(columns) for r in res.rows)


def test_pivot_chunk_last_write_wins(store):
    x = store.select_or_create("x")
    store.attach("color", "red")
    store.attach("color", "blue")

    res = pivot_chunk(store.db_file, [x.id], ["color"])
    assert res.rows == [["blue"]]


def test_pivot_chunk_skips_entities_without_attributes(store):
    ids = seed_store(store, {"empty": {}, "full": {"k": "v"}})

    res = pivot_chunk(store.db_file, list(ids.values()), ["k"])
    assert res.rows == [["v"]]


def test_pivot_chunk_only_reads_its_own_ids(fruit_store):
    ids = seed_store(fruit_store, FRUIT)

    res = pivot_chunk(fruit_store.db_file, [ids["pear"]], ["color", "shape"])
    assert res.rows == [["green", "oval"]]


def test_pivot_chunk_reports_unopenable_store(tmp_path):
    res = pivot_chunk(tmp_path / "missing.sqlite", [1, 2], ["color"], chunk_index=7)

    assert not res.ok
    assert res.rows == []
    assert res.ids == [1, 2]
    assert res.index == 7
    assert res.error


def test_pivot_chunk_empty_ids_is_a_no_op(tmp_path):
    res = pivot_chunk(tmp_path / "missing.sqlite", [], ["color"])
    assert res.ok
    assert res.rows == []
