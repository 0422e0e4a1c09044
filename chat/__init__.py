"""Per-transaction chat between buyer, seller and escrow agent.

Each transaction owns at most one chat, created with the transaction or on
first access. Messages are an append-only log with a read flag per
recipient.
"""

import logging
from typing import Dict, Optional, Any
from uuid import UUID

from common import ForbiddenError, NotFoundError, UnauthorizedError, IssueCollector
from database import get_store
from database.query import eq
from database.store import Store, StoreSession
from transactions.permissions import is_involved
from users import party_view

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000

class ChatError(Exception):
    """Base exception for chat operations."""
    pass

class ChatAccessError(ChatError, ForbiddenError):
    """Raised when the actor is not part of the transaction."""
    pass


def recipient_for(actor, transaction: Dict[str, Any]) -> UUID:
    """Buyer writes to the seller; everyone else writes to the buyer."""
    if actor.id == transaction['buyer_id']:
        return transaction['seller_id']
    return transaction['buyer_id']


class ChatManager:
    """Manages transaction chats and their messages."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store

    async def ensure_store(self):
        """Ensure entity store is available."""
        if not self.store:
            self.store = await get_store()

    async def _open(self, session: StoreSession, actor, transaction_id: UUID):
        if actor is None:
            raise UnauthorizedError("Authentication required")
        transaction = await session.get('transactions', transaction_id)
        if not transaction:
            raise NotFoundError("Transaction not found")
        if not is_involved(actor, transaction):
            raise ChatAccessError("You don't have access to this chat")

        chat = await session.find_one('chats', [eq('transaction_id', transaction_id)])
        if not chat:
            chat = await session.create('chats', {'transaction_id': transaction_id})
            logger.info(f"Created chat {chat['id']} for transaction {transaction_id}")
        return transaction, chat

    async def get_chat(self, actor, transaction_id: UUID) -> Dict[str, Any]:
        """Return the chat with its messages, oldest first.

        Each message carries a summary of its sender. Messages addressed to
        the actor are marked read.
        """
        await self.ensure_store()

        async with self.store.atomic() as session:
            transaction, chat = await self._open(session, actor, transaction_id)
            messages = await session.find('messages', [eq('chat_id', chat['id'])], descending=False)
            senders = {}
            for message in messages:
                if message['recipient_id'] == actor.id and not message['is_read']:
                    await session.update('messages', message['id'], {'is_read': True})
                sender_id = message['sender_id']
                if sender_id not in senders:
                    senders[sender_id] = party_view(await session.get('users', sender_id))
                message['sender'] = senders[sender_id]

        chat['messages'] = messages
        chat['transaction'] = {
            'id': transaction['id'],
            'status': transaction['status'],
            'buyer_id': transaction['buyer_id'],
            'seller_id': transaction['seller_id'],
            'escrow_id': transaction['escrow_id'],
            'listing_id': transaction['listing_id']
        }
        return chat

    async def send_message(self, actor, transaction_id: UUID, content: str) -> Dict[str, Any]:
        """Append a message to the transaction's chat.

        Raises:
            ValidationError: If content is empty or too long
        """
        issues = IssueCollector()
        if not content or not content.strip():
            issues.add('content', 'Message cannot be empty')
        elif len(content) > MAX_MESSAGE_LENGTH:
            issues.add('content', f'Message must be at most {MAX_MESSAGE_LENGTH} characters')
        issues.raise_if_any()

        await self.ensure_store()

        async with self.store.atomic() as session:
            transaction, chat = await self._open(session, actor, transaction_id)
            message = await session.create('messages', {
                'chat_id': chat['id'],
                'sender_id': actor.id,
                'recipient_id': recipient_for(actor, transaction),
                'content': content,
                'is_read': False
            })
            await session.update('chats', chat['id'], {})

        logger.debug(f"Message {message['id']} posted to chat {chat['id']}")
        return message

    async def unread_count(self, actor) -> int:
        """Number of unread messages addressed to the actor."""
        if actor is None:
            raise UnauthorizedError("Authentication required")
        await self.ensure_store()
        return await self.store.count('messages', [
            eq('recipient_id', actor.id),
            eq('is_read', False)
        ])


__all__ = ['ChatManager', 'ChatError', 'ChatAccessError', 'recipient_for', 'MAX_MESSAGE_LENGTH']
