"""Disposable entity-attribute-value (EAV) staging store.

Two tables back the store:

- **entities**: `(id, value)`; `value` is unique, so selecting an existing value
  resolves to its id instead of creating a duplicate.
- **attributes**: `(id, key, value, entity_id)`; any number of facts per entity,
  keys may repeat.

Caution: the SQLite settings favour speed over consistency. A crash can leave
the file corrupt, so the file is deleted and recreated on every open. Never use
this for persistent storage.

The store is the only writer. It must be driven from one thread; exports fan
out over separate read-only connections (see `read_only_engine`).
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import db
from logging_utils import get_logger
from models import Base
from models.attributes import Attribute
from models.entities import Entity
from support.errors import PreconditionError, QueryError, ResourceError

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntityHandle:
    """Explicit reference to a stored entity, returned by `select_or_create`."""

    id: int
    value: str


@dataclass
class AttachResult:
    """Outcome of a best-effort batch attach."""

    succeeded: int = 0
    failed_keys: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_keys


def _remove_store_files(db_file: Path) -> None:
    for p in (db_file, Path(f"{db_file}-wal"), Path(f"{db_file}-shm")):
        if p.exists():
            logger.warning("Removing db file: %s", p)
            p.unlink()


class EavStore:
    """Writer side of the staging store.

    Every write commits immediately so concurrent readers see it.
    """

    def __init__(self, db_file: Path | str) -> None:
        self._db_file = Path(db_file)
        self._current: EntityHandle | None = None

        try:
            _remove_store_files(self._db_file)
            self._db_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"cannot reset store file {self._db_file}: {exc}") from exc

        try:
            self._engine = db.make_writer_engine(self._db_file)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise ResourceError(f"cannot open store {self._db_file}: {exc}") from exc

        self._session = db.make_session_factory(self._engine)()
        logger.info("Store ready | db_file=%s", self._db_file)

    # ------------------------------------------------------------------
    # lifecycle

    @property
    def db_file(self) -> Path:
        return self._db_file

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def current_entity(self) -> EntityHandle | None:
        return self._current

    def read_only_engine(self) -> Engine:
        """A fresh engine over a read-only connection to this store's file."""
        return db.make_read_only_engine(self._db_file)

    def close(self) -> None:
        self._session.close()
        self._engine.dispose()

    def __enter__(self) -> "EavStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # writes

    def select_or_create(self, value: str) -> EntityHandle:
        """Insert `value` as an entity, or resolve the existing one.

        Either way the returned entity becomes the current entity.
        """
        entity = Entity(value=value)
        self._session.add(entity)
        try:
            self._session.commit()
            handle = EntityHandle(id=int(entity.id), value=value)
        except IntegrityError:
            # Already stored; look it up instead.
            self._session.rollback()
            try:
                existing = self._session.execute(
                    select(Entity.id).where(Entity.value == value)
                ).scalar_one_or_none()
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error("Failed to get next row | value=%r error=%s", value, exc)
                raise QueryError(f"cannot resolve entity {value!r}: {exc}") from exc
            if existing is None:
                logger.error("Failed to get next row | value=%r", value)
                raise QueryError(f"entity {value!r} neither inserted nor found")
            handle = EntityHandle(id=int(existing), value=value)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise QueryError(f"cannot insert entity {value!r}: {exc}") from exc

        self._current = handle
        return handle

    def _target_id(self, entity: EntityHandle | int | None) -> int:
        if entity is None:
            entity = self._current
        if entity is None:
            raise PreconditionError("No entity is set")
        if isinstance(entity, EntityHandle):
            return entity.id
        return int(entity)

    def attach(self, key: str, value: str, entity: EntityHandle | int | None = None) -> None:
        """Append one attribute to `entity` (defaults to the current entity)."""
        entity_id = self._target_id(entity)
        self._session.add(Attribute(key=key, value=value, entity_id=entity_id))
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise QueryError(f"cannot attach {key!r} to entity {entity_id}: {exc}") from exc

    def attach_batch(
        self,
        pairs: Mapping[str, str] | Iterable[tuple[str, str]],
        entity: EntityHandle | int | None = None,
    ) -> AttachResult:
        """Attach every pair independently.

        A failing pair is logged and skipped; the returned result lists the
        keys that were dropped so the caller can decide whether that is fine.
        """
        entity_id = self._target_id(entity)
        items = pairs.items() if isinstance(pairs, Mapping) else pairs

        result = AttachResult()
        for key, value in items:
            self._session.add(Attribute(key=key, value=value, entity_id=entity_id))
            try:
                self._session.commit()
                result.succeeded += 1
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error("Error occurred | entity_id=%s key=%r error=%s", entity_id, key, exc)
                result.failed_keys.append(key)

        if result.failed_keys:
            logger.warning(
                "Batch attach incomplete | entity_id=%s succeeded=%s failed=%s",
                entity_id,
                result.succeeded,
                len(result.failed_keys),
            )
        return result

    # ------------------------------------------------------------------
    # reads

    def _read(self, stmt):
        try:
            return self._session.execute(stmt)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise QueryError(str(exc)) from exc

    def count(self) -> int:
        """Total number of entities."""
        return int(self._read(select(func.count(Entity.value))).scalar_one())

    def list_ids(self) -> list[int]:
        """All entity ids, newest first."""
        return [int(v) for v in self._read(select(Entity.id).order_by(Entity.id.desc())).scalars()]

    def distinct_keys(self, priority: Iterable[str] | None = None) -> list[str]:
        """`priority` (deduplicated, in order) followed by every other stored key.

        The suffix order is whatever SQLite's `SELECT DISTINCT` yields: stable
        for fixed contents, but not chosen by the caller.
        """
        columns: list[str] = []
        seen: set[str] = set()
        for k in priority or ():
            if k not in seen:
                seen.add(k)
                columns.append(k)

        for k in self._read(select(Attribute.key).distinct()).scalars():
            if k is None or k in seen:
                continue
            seen.add(k)
            columns.append(k)
        return columns

    def iter_records(self) -> Iterator[dict[str, str]]:
        """Yield `{"id": ..., key: value, ...}` per entity, oldest first.

        Repeated keys keep the later value, matching the export pivot.
        """
        ids = self._read(select(Entity.id).order_by(Entity.id.asc())).scalars().all()
        for entity_id in ids:
            record = {"id": str(entity_id)}
            rows = self._read(
                select(Attribute.key, Attribute.value)
                .where(Attribute.entity_id == entity_id)
                .order_by(Attribute.id.asc())
            )
            for key, value in rows:
                record[key] = value
            yield record

    def __repr__(self) -> str:
        return f"EavStore(db_file={os.fspath(self._db_file)!r})"
