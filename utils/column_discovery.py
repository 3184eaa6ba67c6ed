"""Column discovery for wide exports.

The column list is the caller's priority keys first, then every other key in
the store exactly once. Only the suffix order is chosen by the store (SQLite's
`SELECT DISTINCT`); it is stable for fixed contents but callers must not rely
on it matching insertion order.
"""

from __future__ import annotations

from collections.abc import Iterable

from logging_utils import get_logger
from support.eav_store import EavStore

logger = get_logger(__name__)


def discover_columns(store: EavStore, priority: Iterable[str] | None = None) -> list[str]:
    columns = store.distinct_keys(list(priority or ()))
    logger.debug("Columns discovered | count=%s head=%s", len(columns), columns[:5])
    return columns
