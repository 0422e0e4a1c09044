"""Entity store interface.

The marketplace core talks to persistence only through this interface:
``get``/``create``/``update`` on named entities plus ``atomic()``, which
groups several writes into one all-or-nothing unit. Records are plain dicts
keyed by column name.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Dict, List, Optional, Sequence

from .exceptions import DatabaseError
from .lib.schema_manager import table_columns
from .query import Condition, OPERATORS

Record = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_entity(entity: str) -> frozenset:
    """Return the columns of ``entity`` or raise if it is unknown."""
    columns = table_columns().get(entity)
    if columns is None:
        raise DatabaseError(f"Unknown entity: {entity}")
    return columns


def check_fields(entity: str, fields) -> None:
    columns = check_entity(entity)
    unknown = [field for field in fields if field not in columns]
    if unknown:
        raise DatabaseError(f"Unknown fields for {entity}: {', '.join(sorted(unknown))}")


def check_conditions(entity: str, conditions: Sequence[Condition]) -> None:
    check_fields(entity, [c.field for c in conditions])
    for condition in conditions:
        if condition.op not in OPERATORS:
            raise DatabaseError(f"Unsupported operator: {condition.op}")


def prepare_insert(entity: str, data: Record) -> Record:
    """Fill in id and audit timestamps for a new record."""
    check_fields(entity, data.keys())
    now = utcnow()
    record = dict(data)
    record.setdefault('id', uuid.uuid4())
    record.setdefault('created_at', now)
    record.setdefault('updated_at', now)
    return record


class StoreSession(ABC):
    """Operations available both on a store and inside ``atomic()``."""

    @abstractmethod
    async def get(self, entity: str, id: uuid.UUID, for_update: bool = False) -> Optional[Record]:
        """Fetch one record by id. ``for_update`` locks the row until the unit ends."""

    @abstractmethod
    async def create(self, entity: str, data: Record) -> Record:
        """Insert a record and return it as stored."""

    @abstractmethod
    async def update(self, entity: str, id: uuid.UUID, patch: Record) -> Optional[Record]:
        """Apply ``patch`` to a record, returning the updated record or None."""

    @abstractmethod
    async def increment(self, entity: str, id: uuid.UUID, field: str, amount: int = 1) -> Optional[Record]:
        """Add ``amount`` to a numeric field."""

    @abstractmethod
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
        """Return records matching the conditions."""

    @abstractmethod
    async def count(
        self,
        entity: str,
        filters: Sequence[Condition] = (),
        any_of: Sequence[Condition] = ()
    ) -> int:
        """Count records matching the conditions."""

    async def find_one(self, entity: str, filters: Sequence[Condition] = ()) -> Optional[Record]:
        rows = await self.find(entity, filters, limit=1)
        return rows[0] if rows else None


class Store(StoreSession):
    """A store additionally provides atomic units of work."""

    @abstractmethod
    def atomic(self) -> AsyncContextManager[StoreSession]:
        """Open a unit of work; everything done through it commits or none of it does."""
