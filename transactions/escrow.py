"""Escrow agent assignment policies.

A new transaction is mediated by at most one ESCROW user. The policy used
is chosen by the ``escrow_assignment`` setting; every policy skips agents
who are themselves the buyer or seller, and returns None when nobody is
eligible, in which case the sale proceeds unmediated.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type
from uuid import UUID

from common import OPEN_STATUSES, UserRole
from database.query import eq, in_
from database.store import Record, StoreSession

logger = logging.getLogger(__name__)

# Mediated transactions that still need the agent's attention
OPEN_STATUS_VALUES = sorted(status.value for status in OPEN_STATUSES)


class EscrowAssigner(ABC):
    """Chooses the escrow agent for a new transaction."""

    name = ''

    async def candidates(self, session: StoreSession, buyer_id: UUID, seller_id: UUID) -> List[Record]:
        """Eligible agents, oldest account first."""
        agents = await session.find(
            'users',
            [eq('role', UserRole.ESCROW.value)],
            order_by='created_at',
            descending=False
        )
        return [a for a in agents if a['id'] not in (buyer_id, seller_id)]

    @abstractmethod
    async def assign(self, session: StoreSession, buyer_id: UUID, seller_id: UUID) -> Optional[UUID]:
        """Return the chosen agent's id, or None."""


class FirstAvailableAssigner(EscrowAssigner):
    """Always picks the oldest eligible agent."""

    name = 'first_available'

    async def assign(self, session, buyer_id, seller_id):
        agents = await self.candidates(session, buyer_id, seller_id)
        return agents[0]['id'] if agents else None


class RoundRobinAssigner(EscrowAssigner):
    """Cycles through agents using the number of transactions created so far.

    The position is derived from the store rather than process memory, so
    every API worker agrees on the next agent.
    """

    name = 'round_robin'

    async def assign(self, session, buyer_id, seller_id):
        agents = await self.candidates(session, buyer_id, seller_id)
        if not agents:
            return None
        position = await session.count('transactions')
        return agents[position % len(agents)]['id']


class LeastLoadedAssigner(EscrowAssigner):
    """Picks the agent with the fewest open mediated transactions."""

    name = 'least_loaded'

    async def assign(self, session, buyer_id, seller_id):
        agents = await self.candidates(session, buyer_id, seller_id)
        if not agents:
            return None
        loads = {}
        for agent in agents:
            loads[agent['id']] = await session.count(
                'transactions',
                [eq('escrow_id', agent['id']), in_('status', OPEN_STATUS_VALUES)]
            )
        # min() keeps the first of equal loads, i.e. the oldest agent
        return min(agents, key=lambda agent: loads[agent['id']])['id']


ASSIGNERS: Dict[str, Type[EscrowAssigner]] = {
    cls.name: cls for cls in (FirstAvailableAssigner, RoundRobinAssigner, LeastLoadedAssigner)
}


def get_assigner(name: str) -> EscrowAssigner:
    """Build the assigner registered under ``name``.

    Raises:
        ValueError: If no policy has that name
    """
    try:
        return ASSIGNERS[name]()
    except KeyError:
        raise ValueError(f"Unknown escrow assignment policy: {name}")
