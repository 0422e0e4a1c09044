"""PostgreSQL/CockroachDB store backend built on an asyncpg pool."""

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional, Sequence
from uuid import UUID

import asyncpg
from asyncpg.exceptions import PostgresError

from .exceptions import DatabaseError
from .query import Condition
from .store import (
    Record, Store, StoreSession, check_conditions, check_entity, check_fields,
    prepare_insert, utcnow
)

logger = logging.getLogger(__name__)


def _escape_like(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _render_condition(condition: Condition, params: List[Any]) -> str:
    if condition.op == 'eq' and condition.value is None:
        return f"{condition.field} IS NULL"
    if condition.op == 'contains':
        params.append(f"%{_escape_like(str(condition.value))}%")
        return f"{condition.field} ILIKE ${len(params)}"
    params.append(condition.value)
    if condition.op == 'in':
        return f"{condition.field} = ANY(${len(params)})"
    operator = {'eq': '=', 'gte': '>=', 'lte': '<='}[condition.op]
    return f"{condition.field} {operator} ${len(params)}"


def _where(
    entity: str,
    filters: Sequence[Condition],
    any_of: Sequence[Condition],
    params: List[Any]
) -> str:
    check_conditions(entity, list(filters) + list(any_of))
    clauses = [_render_condition(c, params) for c in filters]
    if any_of:
        clauses.append('(' + ' OR '.join(_render_condition(c, params) for c in any_of) + ')')
    return f" WHERE {' AND '.join(clauses)}" if clauses else ''


class _PostgresSession(StoreSession):
    """Store operations bound to one connection."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def _fetchrow(self, query: str, *params: Any) -> Optional[Record]:
        try:
            row = await self.conn.fetchrow(query, *params)
        except PostgresError as e:
            logger.error(f"Query failed: {e}")
            raise DatabaseError(f"Query failed: {e}") from e
        return dict(row) if row else None

    async def _fetch(self, query: str, *params: Any) -> List[Record]:
        try:
            rows = await self.conn.fetch(query, *params)
        except PostgresError as e:
            logger.error(f"Query failed: {e}")
            raise DatabaseError(f"Query failed: {e}") from e
        return [dict(row) for row in rows]

    async def get(self, entity: str, id: UUID, for_update: bool = False) -> Optional[Record]:
        check_entity(entity)
        lock = ' FOR UPDATE' if for_update else ''
        return await self._fetchrow(f'SELECT * FROM {entity} WHERE id = $1{lock}', id)

    async def create(self, entity: str, data: Record) -> Record:
        record = prepare_insert(entity, data)
        columns = list(record.keys())
        placeholders = ', '.join(f'${i}' for i in range(1, len(columns) + 1))
        return await self._fetchrow(
            f'''
            INSERT INTO {entity} ({', '.join(columns)})
            VALUES ({placeholders})
            RETURNING *
            ''',
            *record.values()
        )

    async def update(self, entity: str, id: UUID, patch: Record) -> Optional[Record]:
        check_fields(entity, patch.keys())
        patch = {**patch, 'updated_at': utcnow()}
        assignments = ', '.join(f'{column} = ${i}' for i, column in enumerate(patch, start=2))
        return await self._fetchrow(
            f'UPDATE {entity} SET {assignments} WHERE id = $1 RETURNING *',
            id, *patch.values()
        )

    async def increment(self, entity: str, id: UUID, field: str, amount: int = 1) -> Optional[Record]:
        check_fields(entity, [field])
        return await self._fetchrow(
            f'''
            UPDATE {entity}
            SET {field} = {field} + $2, updated_at = now()
            WHERE id = $1
            RETURNING *
            ''',
            id, amount
        )

    async def find(
        self,
        entity: str,
        filters: Sequence[Condition] = (),
        any_of: Sequence[Condition] = (),
        order_by: str = 'created_at',
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Record]:
        check_fields(entity, [order_by])
        params: List[Any] = []
        query = f'SELECT * FROM {entity}' + _where(entity, filters, any_of, params)
        direction = 'DESC' if descending else 'ASC'
        query += f' ORDER BY {order_by} {direction}, id {direction}'
        if limit is not None:
            params.append(limit)
            query += f' LIMIT ${len(params)}'
        if offset:
            params.append(offset)
            query += f' OFFSET ${len(params)}'
        return await self._fetch(query, *params)

    async def count(
        self,
        entity: str,
        filters: Sequence[Condition] = (),
        any_of: Sequence[Condition] = ()
    ) -> int:
        params: List[Any] = []
        query = f'SELECT count(*) AS total FROM {entity}' + _where(entity, filters, any_of, params)
        row = await self._fetchrow(query, *params)
        return row['total'] if row else 0


class PostgresStore(Store):
    """Store backed by an asyncpg connection pool.

    Each call outside ``atomic()`` runs on its own pooled connection;
    ``atomic()`` pins one connection and wraps the block in a database
    transaction.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def atomic(self):
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield _PostgresSession(conn)

    async def _run(self, method: str, *args: Any, **kwargs: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await getattr(_PostgresSession(conn), method)(*args, **kwargs)

    async def get(self, entity: str, id: UUID, for_update: bool = False) -> Optional[Record]:
        # Row locks only mean something inside a unit of work
        return await self._run('get', entity, id)

    async def create(self, entity: str, data: Record) -> Record:
        return await self._run('create', entity, data)

    async def update(self, entity: str, id: UUID, patch: Record) -> Optional[Record]:
        return await self._run('update', entity, id, patch)

    async def increment(self, entity: str, id: UUID, field: str, amount: int = 1) -> Optional[Record]:
        return await self._run('increment', entity, id, field, amount)

    async def find(self, entity: str, *args: Any, **kwargs: Any) -> List[Record]:
        return await self._run('find', entity, *args, **kwargs)

    async def count(self, entity: str, *args: Any, **kwargs: Any) -> int:
        return await self._run('count', entity, *args, **kwargs)
