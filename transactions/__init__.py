"""Transactions module for the buyer/seller/escrow trade lifecycle.

This module handles transaction creation from available listings, permission
checked status transitions and the side effects each transition has on the
listing and on user statistics. Every write path runs as one atomic unit
against the entity store.
"""
import logging
from typing import Dict, List, Optional, Any
from uuid import UUID
from datetime import datetime, timezone

from common import (
    TransactionStatus, ListingStatus, UserRole, ForbiddenError, NotFoundError,
    ConflictError, InvalidRequestError, UnauthorizedError, ValidationError,
    IssueCollector, check_page, paginate
)
from config import settings_conf
from database import get_store
from database.query import eq
from database.store import Store, StoreSession
from listings import ListingNotFoundError
from users import party_view, SELLER_PARTY_FIELDS
from .escrow import EscrowAssigner, get_assigner
from .permissions import Decision, can_transition, is_involved

logger = logging.getLogger(__name__)

CHAT_PREVIEW_LIMIT = 50
LIST_ROLES = ('buyer', 'seller', 'escrow')

class TransactionNotFoundError(NotFoundError):
    """Raised when the requested transaction does not exist."""
    pass

class TransitionForbiddenError(ForbiddenError):
    """Raised when the actor may not move the transaction to the requested status."""
    pass

class ListingUnavailableError(ConflictError):
    """Raised when buying a listing that is not AVAILABLE."""
    pass

class SelfPurchaseError(InvalidRequestError):
    """Raised when a seller tries to buy their own listing."""
    pass

class StatusUnchangedError(ConflictError):
    """Raised when the requested status is already the current one."""
    pass


def parse_status(value: Any, field: str = 'status') -> TransactionStatus:
    """Convert user input to a TransactionStatus or raise ValidationError.

    Strings are matched case-insensitively.
    """
    if isinstance(value, str):
        value = value.strip().upper()
    try:
        return TransactionStatus(value)
    except ValueError:
        issues = IssueCollector()
        issues.add(field, f"Invalid status: {value}")
        issues.raise_if_any("Invalid data")


class TransactionManager:
    """Manages transaction creation and state transitions."""

    def __init__(self, store: Optional[Store] = None, escrow_assigner: Optional[EscrowAssigner] = None) -> None:
        """Initialize transaction manager.

        Args:
            store: Optional entity store. If not provided, will get from database module.
            escrow_assigner: Optional escrow policy. Defaults to the configured one.
        """
        self.store = store
        self.escrow_assigner = escrow_assigner or get_assigner(settings_conf['escrow_assignment'])

    async def ensure_store(self):
        """Ensure we have an entity store."""
        if not self.store:
            self.store = await get_store()

    async def create_transaction(self, actor, listing_id: UUID, currency: Optional[str] = None) -> Dict[str, Any]:
        """Start a purchase of an available listing.

        Args:
            actor: The buyer
            listing_id: Listing being bought
            currency: Optional currency override, defaults to the listing's

        Returns:
            The new PENDING transaction

        Raises:
            UnauthorizedError: If there is no actor
            ListingNotFoundError: If the listing does not exist
            ListingUnavailableError: If the listing is not AVAILABLE
            SelfPurchaseError: If the buyer is the listing's seller
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        await self.ensure_store()

        async with self.store.atomic() as session:
            listing = await session.get('listings', listing_id, for_update=True)
            if not listing:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            if listing['status'] != ListingStatus.AVAILABLE.value:
                raise ListingUnavailableError("Listing is not available")
            if listing['seller_id'] == actor.id:
                raise SelfPurchaseError("You cannot buy your own listing")

            escrow_id = await self.escrow_assigner.assign(session, actor.id, listing['seller_id'])

            transaction = await session.create('transactions', {
                'amount': listing['price'],
                'currency': currency or listing['currency'],
                'status': TransactionStatus.PENDING.value,
                'buyer_id': actor.id,
                'seller_id': listing['seller_id'],
                'escrow_id': escrow_id,
                'listing_id': listing['id']
            })
            await session.update('listings', listing['id'], {'status': ListingStatus.PENDING.value})
            await session.create('chats', {'transaction_id': transaction['id']})

        logger.info(
            f"Created transaction {transaction['id']} for listing {listing_id} "
            f"(buyer {actor.id}, escrow {escrow_id or 'none'})"
        )
        return transaction

    async def update_transaction_status(
        self,
        actor,
        transaction_id: UUID,
        target_status: Any,
        tx_hash: Optional[str] = None,
        escrow_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """Move a transaction to a new status and apply the side effects.

        The permission check runs against the transaction as read inside the
        unit of work, so concurrent requests see each other's results.

        Raises:
            UnauthorizedError: If there is no actor
            ValidationError: If the target status is not a known status
            TransactionNotFoundError: If the transaction does not exist
            TransitionForbiddenError: If the actor may not make this transition
            StatusUnchangedError: If the transaction already has the target status
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        target = parse_status(target_status)
        await self.ensure_store()

        async with self.store.atomic() as session:
            transaction = await session.get('transactions', transaction_id, for_update=True)
            if not transaction:
                raise TransactionNotFoundError("Transaction not found")

            decision = can_transition(actor, transaction, target)
            if not decision.allowed:
                raise TransitionForbiddenError(decision.reason)

            previous = TransactionStatus(transaction['status'])
            if previous == target:
                raise StatusUnchangedError(f"Transaction is already {target.value}")

            patch: Dict[str, Any] = {'status': target.value}
            if tx_hash:
                patch['tx_hash'] = tx_hash
            if escrow_address:
                patch['escrow_address'] = escrow_address
            if target == TransactionStatus.COMPLETED:
                patch['completed_at'] = datetime.now(timezone.utc)

            updated = await session.update('transactions', transaction_id, patch)
            await self._apply_side_effects(session, transaction, target)

        logger.info(
            f"Transaction {transaction_id}: {previous.value} -> {target.value} "
            f"by {UserRole(actor.role).value} {actor.id}"
        )
        return updated

    async def _apply_side_effects(
        self,
        session: StoreSession,
        transaction: Dict[str, Any],
        target: TransactionStatus
    ) -> None:
        listing_id = transaction['listing_id']

        if target == TransactionStatus.COMPLETED:
            await session.update('listings', listing_id, {'status': ListingStatus.SOLD.value})
            # Stats count a trade once, even if it is completed again after a dispute
            if transaction['completed_at'] is None:
                await session.increment('users', transaction['seller_id'], 'transaction_count')
                await session.increment('users', transaction['seller_id'], 'successful_transactions')
                await session.increment('users', transaction['buyer_id'], 'transaction_count')
        elif target in (TransactionStatus.CANCELLED, TransactionStatus.REFUNDED):
            await session.update('listings', listing_id, {'status': ListingStatus.AVAILABLE.value})

    async def get_transaction(self, actor, transaction_id: UUID) -> Dict[str, Any]:
        """Get a transaction with its parties, listing, reviews and recent chat messages.

        Raises:
            TransactionNotFoundError: If the transaction does not exist
            ForbiddenError: If the actor is not involved in the transaction
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        await self.ensure_store()

        transaction = await self.store.get('transactions', transaction_id)
        if not transaction:
            raise TransactionNotFoundError("Transaction not found")
        if not is_involved(actor, transaction):
            raise ForbiddenError("You don't have permission to view this transaction")

        transaction['buyer'] = party_view(await self.store.get('users', transaction['buyer_id']))
        transaction['seller'] = party_view(
            await self.store.get('users', transaction['seller_id']), SELLER_PARTY_FIELDS
        )
        transaction['escrow'] = None
        if transaction['escrow_id'] is not None:
            transaction['escrow'] = party_view(await self.store.get('users', transaction['escrow_id']))
        transaction['listing'] = await self.store.get('listings', transaction['listing_id'])
        transaction['reviews'] = await self.store.find(
            'reviews', [eq('transaction_id', transaction_id)]
        )

        messages: List[Dict[str, Any]] = []
        chat = await self.store.find_one('chats', [eq('transaction_id', transaction_id)])
        if chat:
            messages = await self.store.find(
                'messages',
                [eq('chat_id', chat['id'])],
                descending=False,
                limit=CHAT_PREVIEW_LIMIT
            )
        transaction['messages'] = messages
        return transaction

    async def list_transactions(
        self,
        actor,
        role: Optional[str] = None,
        status: Optional[Any] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """List the actor's transactions, newest first.

        Args:
            actor: The caller
            role: Restrict to transactions where the actor is 'buyer', 'seller' or 'escrow'
            status: Optional status filter
            page: Page number starting at 1
            limit: Page size

        Returns:
            Dict with 'transactions' and 'pagination'
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        if limit is None:
            limit = settings_conf['default_page_size']
        limit, offset = check_page(page, limit, settings_conf['max_page_size'])
        await self.ensure_store()

        mediator = UserRole(actor.role) in (UserRole.ESCROW, UserRole.ADMIN)
        filters = []
        any_of = []
        if role:
            role = role.lower()
            if role not in LIST_ROLES:
                raise ValidationError("Invalid data", [
                    {"field": "role", "message": f"Role must be one of: {', '.join(LIST_ROLES)}"}
                ])
            if role == 'escrow' and not mediator:
                raise ForbiddenError("Only escrow agents can list escrow transactions")
            filters.append(eq(f'{role}_id', actor.id))
        else:
            any_of = [eq('buyer_id', actor.id), eq('seller_id', actor.id)]
            if mediator:
                any_of.append(eq('escrow_id', actor.id))

        if status:
            filters.append(eq('status', parse_status(status).value))

        total = await self.store.count('transactions', filters, any_of)
        transactions = await self.store.find(
            'transactions', filters, any_of, limit=limit, offset=offset
        )
        for transaction in transactions:
            listing = await self.store.get('listings', transaction['listing_id'])
            transaction['listing'] = {
                'id': listing['id'],
                'title': listing['title'],
                'images': listing['images'],
                'category': listing['category'],
                'rarity': listing['rarity']
            } if listing else None

        return {
            'transactions': transactions,
            'pagination': paginate(total, page, limit)
        }


__all__ = [
    'TransactionManager',
    'TransactionNotFoundError',
    'TransitionForbiddenError',
    'ListingUnavailableError',
    'SelfPurchaseError',
    'StatusUnchangedError',
    'Decision',
    'can_transition',
    'is_involved',
    'parse_status'
]
