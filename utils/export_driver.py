"""Pivot the staging store into wide rows and stream them to a sink.

One run:

1. discover the column list (priority keys first);
2. list every entity id and cut the list into fixed-size chunks;
3. pivot each chunk on a bounded thread pool, every worker on its own
   read-only connection;
4. hand each finished batch to the sink as soon as its worker completes.

Batches arrive in completion order, not id order. Consumers that need a total
order must sort the output themselves.

A failed chunk never aborts the run: it contributes no rows and is listed in
`ExportResult.failed_chunks`.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter

from config import Config
from logging_utils import get_logger
from support.eav_store import EavStore
from support.row_sinks import CsvRowSink, RowSink, SqliteTableSink
from utils.chunk_planner import partition
from utils.column_discovery import discover_columns
from utils.pivot_worker import pivot_chunk

logger = get_logger(__name__)


class ExportState(enum.Enum):
    IDLE = "idle"
    COLUMNS_DISCOVERED = "columns_discovered"
    WORKERS_LAUNCHED = "workers_launched"
    DRAINING = "draining"
    COMPLETE = "complete"


@dataclass
class FailedChunk:
    index: int
    ids: list[int]
    error: str


@dataclass
class ExportResult:
    columns: list[str]
    chunks_total: int = 0
    rows_written: int = 0
    failed_chunks: list[FailedChunk] = field(default_factory=list)
    failed_rows: int = 0
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed_chunks and self.failed_rows == 0

    def as_dict(self) -> dict:
        return {
            "columns": len(self.columns),
            "chunks_total": self.chunks_total,
            "rows_written": self.rows_written,
            "failed_chunks": [c.index for c in self.failed_chunks],
            "failed_rows": self.failed_rows,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class ExportRun:
    """A single export from `store` into `sink`.

    `state` and `remaining` can be read from another thread while `run()` is
    in progress; the run itself is driven from one thread.
    """

    def __init__(
        self,
        store: EavStore,
        sink: RowSink,
        *,
        chunk_size: int | None = None,
        priority: Iterable[str] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.chunk_size = int(Config.EXPORT_CHUNK_SIZE if chunk_size is None else chunk_size)
        self.priority = list(priority or ())
        self.max_workers = int(Config.EXPORT_MAX_WORKERS if max_workers is None else max_workers)
        if self.chunk_size <= 0 or self.max_workers <= 0:
            raise ValueError(
                f"chunk_size and max_workers must be positive, got {self.chunk_size} and {self.max_workers}"
            )
        self.state = ExportState.IDLE
        self.remaining = 0

    def _set_state(self, state: ExportState) -> None:
        logger.debug("Export state | sink=%s %s -> %s", self.sink.name, self.state.value, state.value)
        self.state = state

    def run(self) -> ExportResult:
        t0 = perf_counter()

        columns = discover_columns(self.store, self.priority)
        self._set_state(ExportState.COLUMNS_DISCOVERED)
        result = ExportResult(columns=columns)

        chunks = partition(self.store.list_ids(), self.chunk_size)
        result.chunks_total = len(chunks)
        logger.info(
            "Starting export | sink=%s path=%s columns=%s chunks=%s chunk_size=%s workers=%s",
            self.sink.name,
            self.sink.path,
            len(columns),
            len(chunks),
            self.chunk_size,
            self.max_workers,
        )

        db_file = self.store.db_file
        try:
            self.sink.open(columns)
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="pivot"
            ) as ex:
                futs = [
                    ex.submit(pivot_chunk, db_file, ids, columns, i)
                    for i, ids in enumerate(chunks)
                ]
                self._set_state(ExportState.WORKERS_LAUNCHED)
                self.remaining = len(futs)
                self._set_state(ExportState.DRAINING)

                for fut in as_completed(futs):
                    chunk = fut.result()
                    self.remaining -= 1
                    logger.debug(
                        "processing ... %s of %s", result.chunks_total - self.remaining, result.chunks_total
                    )
                    if not chunk.ok:
                        result.failed_chunks.append(
                            FailedChunk(index=chunk.index, ids=chunk.ids, error=chunk.error or "")
                        )
                        continue
                    failed = self.sink.write_batch(chunk.rows)
                    result.failed_rows += failed
                    result.rows_written += len(chunk.rows) - failed
        finally:
            self.sink.close()

        self._set_state(ExportState.COMPLETE)
        result.elapsed_seconds = perf_counter() - t0

        if result.ok:
            logger.info("Done! | sink=%s %s", self.sink.name, result.as_dict())
        else:
            logger.warning("Done with failures | sink=%s %s", self.sink.name, result.as_dict())
        return result


def export(
    store: EavStore,
    sink: RowSink,
    *,
    chunk_size: int | None = None,
    priority: Iterable[str] | None = None,
    max_workers: int | None = None,
) -> ExportResult:
    return ExportRun(
        store,
        sink,
        chunk_size=chunk_size,
        priority=priority,
        max_workers=max_workers,
    ).run()


def dump_csv(
    store: EavStore,
    path: Path | str,
    *,
    chunk_size: int | None = None,
    priority: Iterable[str] | None = None,
    max_workers: int | None = None,
) -> ExportResult:
    """Export the store to a CSV file (overwritten if present)."""
    return export(
        store,
        CsvRowSink(path),
        chunk_size=chunk_size,
        priority=priority,
        max_workers=max_workers,
    )


def dump_table(
    store: EavStore,
    path: Path | str,
    *,
    chunk_size: int | None = None,
    priority: Iterable[str] | None = None,
    max_workers: int | None = None,
    table_name: str | None = None,
) -> ExportResult:
    """Export the store to a single table in a fresh SQLite file."""
    return export(
        store,
        SqliteTableSink(path, table_name=table_name or Config.EXPORT_TABLE_NAME),
        chunk_size=chunk_size,
        priority=priority,
        max_workers=max_workers,
    )
