"""
Content store adapter.

A thin, table-addressed facade over the async SQLAlchemy session:

* row CRUD (``insert`` / ``update`` / ``delete``) and filtered, sorted,
  paginated ``query`` by table name;
* ``invoke`` for named procedures, each of which runs inside a single
  transaction so its writes land or roll back together.

``SQLAlchemyError`` never leaves this module; it is re-raised as
``StoreError`` so engines only deal with the error taxonomy.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.database import Base, async_session
from src.engine.errors import ConflictError, EngineError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

Procedure = Callable[..., Awaitable[Any]]

# name -> coroutine taking (session, **args)
_PROCEDURES: dict[str, Procedure] = {}


def procedure(name: str) -> Callable[[Procedure], Procedure]:
    """Register *fn* as the atomic procedure *name*."""

    def register(fn: Procedure) -> Procedure:
        if name in _PROCEDURES and _PROCEDURES[name] is not fn:
            raise ValueError(f"Procedure {name!r} already registered")
        _PROCEDURES[name] = fn
        return fn

    return register


def registered_procedures() -> list[str]:
    return sorted(_PROCEDURES)


async def insert_ignore(session: AsyncSession, model, values: dict) -> int:
    """Insert *values* unless a unique key already holds them.

    Returns the number of rows written (0 or 1). Uses the dialect's
    ``ON CONFLICT DO NOTHING`` where available, so a concurrent duplicate
    insert never raises.
    """
    dialect = session.bind.dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing()
    else:
        try:
            async with session.begin_nested():
                await session.execute(insert(model).values(**values))
        except IntegrityError:
            return 0
        return 1
    result = await session.execute(stmt)
    return result.rowcount or 0


class ContentStore:
    """Generic access to the relational store used by every engine."""

    def __init__(self, session_factory=async_session):
        self._session_factory = session_factory

    # ── Transactions ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside ``BEGIN ... COMMIT``.

        Domain errors raised inside the block roll back and propagate
        unchanged; database errors roll back and surface as ``StoreError``.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except EngineError:
            raise
        except IntegrityError as exc:
            logger.warning("Constraint violation: %s", exc.orig)
            raise ConflictError("Constraint violation in content store.") from exc
        except SQLAlchemyError as exc:
            logger.exception("Content store failure")
            raise StoreError("Content store unavailable.") from exc

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[AsyncSession]:
        """Yield a session for read-only work."""
        try:
            async with self._session_factory() as session:
                yield session
        except EngineError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Content store read failure")
            raise StoreError("Content store unavailable.") from exc

    # ── Row CRUD ──────────────────────────────────────────────────────────

    @staticmethod
    def _table(name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise NotFoundError(f"Unknown table '{name}'.")
        return table

    @staticmethod
    def _where(table: Table, filters: Optional[dict[str, Any]]) -> list:
        clauses = []
        for column, value in (filters or {}).items():
            if column not in table.c:
                raise StoreError(f"Unknown column '{table.name}.{column}'.")
            clauses.append(table.c[column] == value)
        return clauses

    async def insert(self, table: str, row: dict[str, Any]) -> Any:
        tbl = self._table(table)
        async with self.transaction() as session:
            result = await session.execute(insert(tbl).values(**row))
            return result.inserted_primary_key[0]

    async def update(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> int:
        tbl = self._table(table)
        async with self.transaction() as session:
            result = await session.execute(
                update(tbl).where(*self._where(tbl, filters)).values(**patch)
            )
            return result.rowcount

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        tbl = self._table(table)
        if not filters:
            raise StoreError("Refusing to delete without a filter.")
        async with self.transaction() as session:
            result = await session.execute(delete(tbl).where(*self._where(tbl, filters)))
            return result.rowcount

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[Iterable[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Select rows as plain dicts.

        *order_by* entries name a column, prefixed with ``-`` for
        descending order.
        """
        tbl = self._table(table)
        stmt = select(tbl).where(*self._where(tbl, filters))
        for key in order_by or ():
            column_name = key.lstrip("-")
            if column_name not in tbl.c:
                raise StoreError(f"Unknown column '{table}.{column_name}'.")
            column = tbl.c[column_name]
            stmt = stmt.order_by(column.desc() if key.startswith("-") else column.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.reader() as session:
            result = await session.execute(stmt)
            return [dict(row._mapping) for row in result.all()]

    # ── Procedures ────────────────────────────────────────────────────────

    async def invoke(self, name: str, **args: Any) -> Any:
        """Run the registered procedure *name* in one transaction."""
        fn = _PROCEDURES.get(name)
        if fn is None:
            raise NotFoundError(f"Unknown procedure '{name}'.")
        async with self.transaction() as session:
            return await fn(session, **args)


store = ContentStore()
