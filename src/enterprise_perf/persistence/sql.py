"""SQLAlchemy-backed document store.

Translates the Mongo-style filter subset into SQL expressions over a Core
Table and runs queries on an AsyncEngine. Projections select only the
requested columns.

Count estimation reads the planner statistics in pg_class on PostgreSQL,
which is O(1) regardless of table size. Other dialects, and tables that
have never been analyzed, fall back to an exact COUNT(*).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select, Table, and_, false, func, or_, select, text, true
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from enterprise_perf.persistence.filters import is_operator_expr
from enterprise_perf.persistence.store import Filter, Row, SortSpec

logger = logging.getLogger(__name__)

_PG_ESTIMATE = text("SELECT reltuples::bigint FROM pg_class WHERE relname = :name")


class SqlStore:
    """DocumentStore over one relational table."""

    def __init__(self, engine: AsyncEngine, table: Table, id_field: str = "id"):
        self.engine = engine
        self.table = table
        self.id_field = id_field

    def _column(self, name: str) -> ColumnElement[Any]:
        try:
            return self.table.c[name]
        except KeyError:
            raise ValueError(f"Unknown column '{name}' for table {self.table.name}") from None

    def _condition(self, column: ColumnElement[Any], condition: Any) -> ColumnElement[bool]:
        if not is_operator_expr(condition):
            return column.is_(None) if condition is None else column == condition

        clauses: list[ColumnElement[bool]] = []
        for op, expected in condition.items():
            if op == "$in":
                clauses.append(column.in_(list(expected)) if expected else false())
            elif op == "$nin":
                if expected:
                    clauses.append(or_(column.not_in(list(expected)), column.is_(None)))
            elif op == "$ne":
                if expected is None:
                    clauses.append(column.is_not(None))
                else:
                    clauses.append(or_(column != expected, column.is_(None)))
            elif op == "$exists":
                clauses.append(column.is_not(None) if expected else column.is_(None))
            elif op == "$lt":
                clauses.append(column < expected)
            elif op == "$lte":
                clauses.append(column <= expected)
            elif op == "$gt":
                clauses.append(column > expected)
            elif op == "$gte":
                clauses.append(column >= expected)
        return and_(true(), *clauses)

    def build_where(self, filter: Filter | None) -> ColumnElement[bool]:
        """Translate a filter into a WHERE expression."""
        if not filter:
            return true()

        clauses: list[ColumnElement[bool]] = []
        for key, condition in filter.items():
            if key == "$and":
                clauses.append(and_(true(), *(self.build_where(sub) for sub in condition)))
            elif key == "$or":
                clauses.append(or_(false(), *(self.build_where(sub) for sub in condition)))
            else:
                clauses.append(self._condition(self._column(key), condition))
        return and_(true(), *clauses)

    def build_select(
        self,
        filter: Filter | None,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
        projection: Sequence[str] | None = None,
    ) -> Select[Any]:
        columns = [self._column(name) for name in projection] if projection else [self.table]
        stmt = select(*columns).where(self.build_where(filter))
        for field, direction in sort or []:
            column = self._column(field)
            # Nulls order lowest, as in the in-memory store
            if direction < 0:
                stmt = stmt.order_by(column.desc().nulls_last())
            else:
                stmt = stmt.order_by(column.asc().nulls_first())
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    async def _fetch(self, stmt: Select[Any]) -> list[Row]:
        async with self.engine.connect() as conn:
            result = await conn.execute(stmt)
            return [dict(row._mapping) for row in result]

    async def find_many(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]:
        stmt = self.build_select(
            filter, sort=sort, skip=skip, limit=limit, projection=projection
        )
        return await self._fetch(stmt)

    async def find_by_id(self, entity_id: Any) -> Row | None:
        rows = await self._fetch(self.build_select({self.id_field: entity_id}, limit=1))
        return rows[0] if rows else None

    async def find_many_by_ids(self, ids: Sequence[Any]) -> list[Row]:
        if not ids:
            return []
        return await self._fetch(self.build_select({self.id_field: {"$in": list(ids)}}))

    async def count(self, filter: Filter) -> int:
        stmt = select(func.count()).select_from(self.table).where(self.build_where(filter))
        async with self.engine.connect() as conn:
            return int((await conn.execute(stmt)).scalar_one())

    async def estimated_count(self) -> int:
        if self.engine.dialect.name != "postgresql":
            return await self.count({})

        async with self.engine.connect() as conn:
            estimate = (await conn.execute(_PG_ESTIMATE, {"name": self.table.name})).scalar()
        # reltuples is -1 until the table has been analyzed (PostgreSQL 14+)
        if estimate is None or estimate < 0:
            logger.debug(f"No planner estimate for {self.table.name}, counting exactly")
            return await self.count({})
        return int(estimate)
