from __future__ import annotations

import abc
import csv
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

import db
from logging_utils import get_logger
from support.errors import QueryError, ResourceError

logger = get_logger(__name__)


def _remove_existing(path: Path) -> None:
    try:
        if path.exists():
            logger.warning("Deleting file: %s", path)
            path.unlink()
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ResourceError(f"cannot reset output {path}: {exc}") from exc


class RowSink(abc.ABC):
    """Destination for pivoted rows.

    The export engine calls `open(columns)` once, then `write_batch(rows)` for
    each finished chunk, then `close()`. Every row handed to `write_batch` must
    hold exactly `len(columns)` values; rows that don't are counted as failed
    and skipped.
    """

    name: str = "sink"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.columns: list[str] = []

    @abc.abstractmethod
    def open(self, columns: Sequence[str]) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def write_batch(self, rows: Sequence[Sequence[Any]]) -> int:  # pragma: no cover
        """Write rows in order; return how many could not be written."""
        raise NotImplementedError

    @abc.abstractmethod
    def close(self) -> None:  # pragma: no cover
        raise NotImplementedError

    def _check_width(self, row: Sequence[Any]) -> bool:
        if len(row) != len(self.columns):
            logger.error(
                "Row width mismatch | sink=%s expected=%s got=%s",
                self.name,
                len(self.columns),
                len(row),
            )
            return False
        return True

    def __enter__(self) -> "RowSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class CsvRowSink(RowSink):
    """Header row equal to the column list, then rows in arrival order."""

    name = "csv"

    def __init__(self, path: Path | str) -> None:
        super().__init__(path)
        self._fh = None
        self._writer = None

    def open(self, columns: Sequence[str]) -> None:
        _remove_existing(self.path)
        self.columns = list(columns)
        try:
            self._fh = open(self.path, "w", encoding="utf-8", newline="")
        except OSError as exc:
            raise ResourceError(f"cannot create {self.path}: {exc}") from exc
        self._writer = csv.writer(self._fh)
        self._writer.writerow(self.columns)

    def write_batch(self, rows: Sequence[Sequence[Any]]) -> int:
        if self._writer is None:
            raise ResourceError("csv sink is not open")
        failed = 0
        for row in rows:
            if not self._check_width(row):
                failed += 1
                continue
            try:
                self._writer.writerow(["" if v is None else str(v) for v in row])
            except csv.Error as exc:
                logger.error("Failed to store data | path=%s error=%s", self.path, exc)
                failed += 1
        return failed

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
        self._fh = None
        self._writer = None


class SqliteTableSink(RowSink):
    """A fresh SQLite file holding one all-TEXT table shaped like the columns.

    Column names are quoted verbatim, so any key (including `""`) becomes a
    column. SQLite compares column names case-insensitively: keys that differ
    only by case (`Color`, `color`) cannot share a table and `open` raises
    `QueryError`.
    """

    name = "sqlite"

    def __init__(self, path: Path | str, table_name: str = "products") -> None:
        super().__init__(path)
        self.table_name = table_name
        self._engine: Engine | None = None
        self._insert_sql: str | None = None

    def open(self, columns: Sequence[str]) -> None:
        _remove_existing(self.path)
        self.columns = list(columns)
        try:
            self._engine = create_engine(db.sqlite_url(self.path))
        except SQLAlchemyError as exc:
            raise ResourceError(f"cannot open {self.path}: {exc}") from exc

        if not self.columns:
            logger.warning("No columns discovered; table not created | path=%s", self.path)
            return

        quote = self._engine.dialect.identifier_preparer.quote_identifier
        table = quote(self.table_name)
        col_defs = ", ".join(f"{quote(c)} TEXT" for c in self.columns)
        col_names = ", ".join(quote(c) for c in self.columns)
        placeholders = ", ".join("?" for _ in self.columns)
        try:
            with self._engine.begin() as conn:
                conn.exec_driver_sql(f"CREATE TABLE {table} ({col_defs})")
        except SQLAlchemyError as exc:
            raise QueryError(f"cannot create table {self.table_name!r}: {exc}") from exc
        self._insert_sql = f"INSERT INTO {table} ({col_names}) VALUES ({placeholders})"

    def _params(self, row: Sequence[Any]) -> tuple[str, ...]:
        return tuple("" if v is None else str(v) for v in row)

    def write_batch(self, rows: Sequence[Sequence[Any]]) -> int:
        if self._engine is None:
            raise ResourceError("sqlite sink is not open")
        if self._insert_sql is None:
            return len(rows)

        failed = 0
        params = []
        for row in rows:
            if self._check_width(row):
                params.append(self._params(row))
            else:
                failed += 1
        if not params:
            return failed

        try:
            with self._engine.begin() as conn:
                conn.exec_driver_sql(self._insert_sql, params)
            return failed
        except SQLAlchemyError as exc:
            logger.warning("Batch insert failed, retrying row by row | error=%s", exc)

        for p in params:
            try:
                with self._engine.begin() as conn:
                    conn.exec_driver_sql(self._insert_sql, p)
            except SQLAlchemyError as exc:
                logger.error("Failed to store to db | table=%s error=%s", self.table_name, exc)
                failed += 1
        return failed

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._insert_sql = None
