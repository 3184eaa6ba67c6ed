"""Pivot one chunk of entities from EAV rows into wide rows.

Each call opens its own read-only connection to the store file, so any number
of chunks can be pivoted concurrently without touching the writer's
connection.

Grouping rules:
- rows are scanned ordered by entity id, then attribute row id;
- entities appear in the output in first-appearance order;
- a repeated key for the same entity overwrites the earlier value
  (last write wins), although the store keeps both rows;
- entities without any attribute produce no row.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

import db
from logging_utils import get_logger
from models.attributes import Attribute

logger = get_logger(__name__)

# Values aligned with the export's column list.
WideRow = list[str]


@dataclass
class ChunkResult:
    index: int
    ids: list[int]
    rows: list[WideRow] = field(default_factory=list)
    error: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def group_rows(rows: Iterable[tuple[int, str, str | None]]) -> dict[int, dict[str, str]]:
    """Fold `(entity_id, key, value)` rows into one ordered mapping per entity."""

    grouped: dict[int, dict[str, str]] = {}
    for entity_id, key, value in rows:
        grouped.setdefault(entity_id, {})[key] = "" if value is None else value
    return grouped


def project_row(attrs: Mapping[str, str], columns: Sequence[str]) -> WideRow:
    """One value per column, `""` where the entity has no such key."""
    return [attrs.get(col, "") for col in columns]


def pivot_chunk(
    db_file: Path | str,
    ids: Sequence[int],
    columns: Sequence[str],
    chunk_index: int = 0,
) -> ChunkResult:
    """Read, group and project one chunk. Never raises.

    Connection and query failures are logged and reported through
    `ChunkResult.error` with no rows, so the export run can still complete.
    """

    result = ChunkResult(index=chunk_index, ids=list(ids))
    if not result.ids:
        return result

    t0 = perf_counter()
    engine = None
    try:
        engine = db.make_read_only_engine(db_file)
        stmt = (
            select(Attribute.entity_id, Attribute.key, Attribute.value)
            .where(Attribute.entity_id.in_(result.ids))
            .order_by(Attribute.entity_id, Attribute.id)
        )
        with engine.connect() as conn:
            grouped = group_rows(conn.execute(stmt))
    except SQLAlchemyError as exc:
        result.error = f"{type(exc).__name__}: {exc}"
        logger.error(
            "Chunk read failed | chunk=%s ids=%s db_file=%s error=%s",
            chunk_index,
            len(result.ids),
            db_file,
            exc,
        )
        return result
    finally:
        if engine is not None:
            engine.dispose()

    result.rows = [project_row(attrs, columns) for attrs in grouped.values()]
    result.elapsed_seconds = perf_counter() - t0
    logger.debug(
        "done processing | chunk=%s rows=%s elapsed=%.2fs",
        chunk_index,
        len(result.rows),
        result.elapsed_seconds,
    )
    return result
