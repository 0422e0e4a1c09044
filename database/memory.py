"""In-process store backend.

Tables live in dicts keyed by id. Units of work run on a deep copy of the
tables under a lock and replace the live tables only when the block exits
cleanly, so readers never observe a half-applied unit.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from .lib.schema_manager import table_columns
from .query import Condition
from .store import (
    Record, Store, StoreSession, check_conditions, check_entity, check_fields,
    prepare_insert, utcnow
)


def _matches(record: Record, condition: Condition) -> bool:
    value = record.get(condition.field)
    if condition.op == 'eq':
        return value == condition.value
    if condition.op == 'in':
        return value in condition.value
    if value is None:
        return False
    if condition.op == 'gte':
        return value >= condition.value
    if condition.op == 'lte':
        return value <= condition.value
    if condition.op == 'contains':
        return str(condition.value).lower() in str(value).lower()
    return False


def _sort_key(value: Any, position: int):
    # None sorts before any value, like NULLS FIRST
    return (value is not None, value, position)


class _MemorySession(StoreSession):

    def __init__(self, tables: Dict[str, Dict[UUID, Record]]):
        self._tables = tables

    def _table(self, entity: str) -> Dict[UUID, Record]:
        check_entity(entity)
        return self._tables.setdefault(entity, {})

    def _select(self, entity: str, filters: Sequence[Condition], any_of: Sequence[Condition]) -> List[Record]:
        check_conditions(entity, list(filters) + list(any_of))
        rows = []
        for record in self._table(entity).values():
            if not all(_matches(record, c) for c in filters):
                continue
            if any_of and not any(_matches(record, c) for c in any_of):
                continue
            rows.append(record)
        return rows

    async def get(self, entity: str, id: UUID, for_update: bool = False) -> Optional[Record]:
        record = self._table(entity).get(id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, entity: str, data: Record) -> Record:
        record = prepare_insert(entity, data)
        # Unset columns read back as None, like a nullable SQL column
        full = {column: None for column in table_columns()[entity]}
        full.update(record)
        self._table(entity)[full['id']] = full
        return copy.deepcopy(full)

    async def update(self, entity: str, id: UUID, patch: Record) -> Optional[Record]:
        check_fields(entity, patch.keys())
        record = self._table(entity).get(id)
        if record is None:
            return None
        record.update(copy.deepcopy(patch))
        record['updated_at'] = utcnow()
        return copy.deepcopy(record)

    async def increment(self, entity: str, id: UUID, field: str, amount: int = 1) -> Optional[Record]:
        check_fields(entity, [field])
        record = self._table(entity).get(id)
        if record is None:
            return None
        record[field] = (record.get(field) or 0) + amount
        record['updated_at'] = utcnow()
        return copy.deepcopy(record)

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
        rows = self._select(entity, filters, any_of)
        # Insertion order breaks ties between equal sort keys
        indexed = sorted(
            enumerate(rows),
            key=lambda item: _sort_key(item[1].get(order_by), item[0]),
            reverse=descending
        )
        rows = [row for _, row in indexed]
        end = offset + limit if limit is not None else None
        return copy.deepcopy(rows[offset:end])

    async def count(
        self,
        entity: str,
        filters: Sequence[Condition] = (),
        any_of: Sequence[Condition] = ()
    ) -> int:
        return len(self._select(entity, filters, any_of))


class MemoryStore(Store):
    """Store keeping every table in process memory."""

    def __init__(self):
        self._tables: Dict[str, Dict[UUID, Record]] = {}
        self._lock = asyncio.Lock()

    def _reader(self) -> _MemorySession:
        return _MemorySession(self._tables)

    @asynccontextmanager
    async def atomic(self):
        async with self._lock:
            working = copy.deepcopy(self._tables)
            yield _MemorySession(working)
            self._tables = working

    async def get(self, entity: str, id: UUID, for_update: bool = False) -> Optional[Record]:
        return await self._reader().get(entity, id)

    async def create(self, entity: str, data: Record) -> Record:
        async with self.atomic() as session:
            return await session.create(entity, data)

    async def update(self, entity: str, id: UUID, patch: Record) -> Optional[Record]:
        async with self.atomic() as session:
            return await session.update(entity, id, patch)

    async def increment(self, entity: str, id: UUID, field: str, amount: int = 1) -> Optional[Record]:
        async with self.atomic() as session:
            return await session.increment(entity, id, field, amount)

    async def find(self, entity: str, *args: Any, **kwargs: Any) -> List[Record]:
        return await self._reader().find(entity, *args, **kwargs)

    async def count(self, entity: str, *args: Any, **kwargs: Any) -> int:
        return await self._reader().count(entity, *args, **kwargs)
