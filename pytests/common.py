"""Shared helpers for tests.

Intended usage:
- spin up a temporary staging store
- seed it from plain dicts
- read export outputs back (CSV file, SQLite table)

These utilities keep tests small and consistent.
"""

from __future__ import annotations

import csv
import sqlite3
from collections.abc import Mapping
from pathlib import Path

from support.eav_store import EavStore

__all__ = [
    "make_store",
    "seed_store",
    "read_csv_rows",
    "read_table_rows",
    "FRUIT",
]

# apple has no shape; pear has both keys.
FRUIT: dict[str, dict[str, str]] = {
    "apple": {"color": "red"},
    "pear": {"color": "green", "shape": "oval"},
}


def make_store(tmp_path: Path, name: str = "store.sqlite") -> EavStore:
    """Create a fresh store file under `tmp_path`."""

    return EavStore(tmp_path / name)


def seed_store(store: EavStore, data: Mapping[str, Mapping[str, str]]) -> dict[str, int]:
    """Insert `{entity_value: {key: value}}`; return entity value -> id."""

    ids: dict[str, int] = {}
    for value, attrs in data.items():
        handle = store.select_or_create(value)
        ids[value] = handle.id
        for k, v in attrs.items():
            store.attach(k, v, entity=handle)
    return ids


def read_csv_rows(path: Path) -> tuple[list[str], list[list[str]]]:
    """Return (header, data rows)."""

    with open(path, encoding="utf-8", newline="") as f:
        rows = list(csv.reader(f))
    return rows[0], rows[1:]


def read_table_rows(path: Path, table: str = "products") -> tuple[list[str], list[tuple]]:
    """Return (column names, rows) from a single-table SQLite export."""

    con = sqlite3.connect(str(path))
    try:
        cur = con.execute(f'SELECT * FROM "{table}"')
        cols = [d[0] for d in cur.description]
        return cols, cur.fetchall()
    finally:
        con.close()
