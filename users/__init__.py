"""User profiles: viewing, editing and upgrading to a seller account."""

import logging
from typing import Dict, Optional, Any

from common import UserRole, NotFoundError, ConflictError, UnauthorizedError, IssueCollector
from database import get_store
from database.store import Store

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    'id', 'name', 'email', 'username', 'bio', 'image', 'wallet_address', 'role',
    'rating', 'verified_seller', 'transaction_count', 'successful_transactions',
    'created_at'
)

# Public identity shown for the parties of a trade and message senders
PARTY_FIELDS = ('id', 'name', 'username', 'image')
SELLER_PARTY_FIELDS = PARTY_FIELDS + ('rating', 'verified_seller')

class UserNotFoundError(NotFoundError):
    """Raised when the actor's user record is missing."""
    pass


def profile_view(user: Dict[str, Any]) -> Dict[str, Any]:
    return {field: user.get(field) for field in PROFILE_FIELDS}


def party_view(user: Optional[Dict[str, Any]], fields=PARTY_FIELDS) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {field: user.get(field) for field in fields}


class UserManager:
    """Manages user profiles."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store

    async def ensure_store(self):
        """Ensure entity store is available."""
        if not self.store:
            self.store = await get_store()

    async def get_profile(self, actor) -> Dict[str, Any]:
        if actor is None:
            raise UnauthorizedError("Authentication required")
        await self.ensure_store()
        user = await self.store.get('users', actor.id)
        if not user:
            raise UserNotFoundError("User not found")
        return profile_view(user)

    async def update_profile(
        self,
        actor,
        name: Optional[str] = None,
        username: Optional[str] = None,
        bio: Optional[str] = None,
        wallet_address: Optional[str] = None,
        image: Optional[str] = None
    ) -> Dict[str, Any]:
        """Update the supplied profile fields; None leaves a field unchanged.

        Raises:
            ValidationError: If a supplied field is invalid
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")

        issues = IssueCollector()
        patch: Dict[str, Any] = {}
        if name is not None:
            if len(name.strip()) < 2:
                issues.add('name', 'Name must be at least 2 characters')
            patch['name'] = name.strip()
        if username is not None:
            if len(username.strip()) < 3:
                issues.add('username', 'Username must be at least 3 characters')
            patch['username'] = username.strip()
        if bio is not None:
            if len(bio) > 500:
                issues.add('bio', 'Bio must be at most 500 characters')
            patch['bio'] = bio
        if wallet_address is not None:
            patch['wallet_address'] = wallet_address.strip() or None
        if image is not None:
            if image and not image.startswith(('http://', 'https://')):
                issues.add('image', 'Image must be an http(s) URL')
            patch['image'] = image or None
        issues.raise_if_any()

        await self.ensure_store()
        user = await self.store.update('users', actor.id, patch)
        if not user:
            raise UserNotFoundError("User not found")

        logger.info(f"Updated profile of {actor.id}: {', '.join(sorted(patch)) or 'no changes'}")
        return profile_view(user)

    async def become_seller(self, actor) -> Dict[str, Any]:
        """Upgrade a buyer account to a seller account.

        Raises:
            ConflictError: If the account is not a buyer account
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        await self.ensure_store()

        async with self.store.atomic() as session:
            user = await session.get('users', actor.id, for_update=True)
            if not user:
                raise UserNotFoundError("User not found")
            if user['role'] != UserRole.BUYER.value:
                raise ConflictError(f"Only buyers can become sellers (current role: {user['role']})")
            user = await session.update('users', actor.id, {'role': UserRole.SELLER.value})

        logger.info(f"User {actor.id} became a seller")
        return profile_view(user)


__all__ = [
    'UserManager', 'UserNotFoundError', 'profile_view', 'party_view',
    'PROFILE_FIELDS', 'PARTY_FIELDS', 'SELLER_PARTY_FIELDS'
]
