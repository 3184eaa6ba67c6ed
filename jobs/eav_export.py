"""Seed the staging store with random facts and time both exports.

Usage:
    python jobs/eav_export.py
    python jobs/eav_export.py --entities 1000 --keys 400 --chunk-size 100 --workers 4
    python jobs/eav_export.py --priority C/abcde,C/fghij --log-level DEBUG
"""

from __future__ import annotations

import argparse
import os
import random
import string
import sys
from pathlib import Path
from time import perf_counter

# Allow running this file directly (e.g. `python jobs/eav_export.py`) by
# ensuring the project root is importable.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

import logging_utils
from config import Config
from logging_utils import get_logger
from support.eav_store import EavStore
from utils.export_driver import dump_csv, dump_table

logger = get_logger(__name__)

_ALPHANUMERIC = string.ascii_letters + string.digits


def random_str(length: int, rng: random.Random) -> str:
    return "".join(rng.choice(_ALPHANUMERIC) for _ in range(length))


def _parse_csv_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def seed_store(
    store: EavStore,
    *,
    entities: int,
    keys: int,
    rng: random.Random,
) -> dict[str, int]:
    """Fill `store` with `entities` random entities over a pool of `keys` keys.

    Each entity draws `keys` random key indexes and keeps the distinct ones,
    so entities end up with a sparse, uneven subset of the key pool.
    """

    key_pool = [f"C/{random_str(5, rng)}" for _ in range(keys)]
    attached = 0
    failed = 0
    for _ in range(entities):
        handle = store.select_or_create(random_str(5, rng))
        picked: dict[str, str] = {}
        for _ in range(keys):
            k = key_pool[rng.randrange(keys)]
            if k in picked:
                continue
            picked[k] = random_str(10, rng)
        res = store.attach_batch(picked, entity=handle)
        attached += res.succeeded
        failed += len(res.failed_keys)
    return {"entities": store.count(), "attributes": attached, "failed": failed}


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed the EAV staging store and export it.")
    p.add_argument("--db", default=Config.EAV_STORE_PATH, help="Staging store file (recreated).")
    p.add_argument("--csv-out", default="another_db.csv", help="CSV output path.")
    p.add_argument("--table-out", default="another_db.sqlite", help="SQLite output path.")
    p.add_argument("--table-name", default=Config.EXPORT_TABLE_NAME)
    p.add_argument("--entities", type=int, default=1000)
    p.add_argument("--keys", type=int, default=400)
    p.add_argument("--chunk-size", type=int, default=Config.EXPORT_CHUNK_SIZE)
    p.add_argument("--workers", type=int, default=Config.EXPORT_MAX_WORKERS)
    p.add_argument("--priority", default="", help="Comma-separated keys to put first.")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data.")
    p.add_argument("--log-level", default=None)
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> dict[str, dict]:
    args = _parse_args(argv)

    if args.log_level:
        os.environ["LOG_LEVEL"] = str(args.log_level)
        logging_utils.set_level(str(args.log_level))

    logger.info(
        "eav_export starting | db=%s entities=%s keys=%s chunk_size=%s workers=%s",
        args.db,
        args.entities,
        args.keys,
        args.chunk_size,
        args.workers,
    )

    rng = random.Random(args.seed)
    priority = _parse_csv_list(args.priority)

    with EavStore(args.db) as store:
        seeded = seed_store(store, entities=args.entities, keys=args.keys, rng=rng)
        logger.info("Seeded | %s", seeded)

        t = perf_counter()
        table_res = dump_table(
            store,
            args.table_out,
            chunk_size=args.chunk_size,
            priority=priority,
            max_workers=args.workers,
            table_name=args.table_name,
        )
        logger.info("sqlite: %.2fs", perf_counter() - t)

        t = perf_counter()
        csv_res = dump_csv(
            store,
            args.csv_out,
            chunk_size=args.chunk_size,
            priority=priority,
            max_workers=args.workers,
        )
        logger.info("csv: %.2fs", perf_counter() - t)

    return {"seeded": seeded, "table": table_res.as_dict(), "csv": csv_res.as_dict()}


if __name__ == "__main__":
    main()
