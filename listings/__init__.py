"""Listings module for managing marketplace listings.

This module provides functionality for:
- Creating and editing listings of game items
- Searching and filtering available listings
- Managing listing lifecycle (soft deletion, deactivation)
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any
from uuid import UUID

from common import (
    ListingStatus, UserRole, Category, Rarity, OPEN_STATUSES,
    ForbiddenError, NotFoundError, ConflictError, UnauthorizedError, IssueCollector
)
from config import settings_conf
from database import get_store
from database.query import eq, in_
from database.store import Store
from .search import search

logger = logging.getLogger(__name__)


# User-mutable fields for listings
MUTABLE_FIELDS = {
    'title',
    'description',
    'price',
    'currency',
    'images',
    'category',
    'rarity',
    'status'
}

# Statuses a seller may set directly; the rest follow transactions
SELLER_STATUSES = {ListingStatus.AVAILABLE, ListingStatus.INACTIVE}

# Seller fields shown alongside a listing
SELLER_SUMMARY_FIELDS = (
    'id', 'name', 'username', 'image', 'rating', 'verified_seller',
    'transaction_count', 'successful_transactions'
)

class ListingError(Exception):
    """Base exception for listing operations."""
    pass

class ListingNotFoundError(ListingError, NotFoundError):
    """Raised when a listing is not found."""
    pass

class ListingInUseError(ListingError, ConflictError):
    """Raised when a listing is referenced by an unfinished transaction."""
    pass


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(('http://', 'https://'))


def validate_listing_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize listing fields.

    Args:
        fields: Raw field values
        partial: When True only the fields present are checked

    Returns:
        Normalized values (Decimal price, enum values as strings)

    Raises:
        ValidationError: With one issue per invalid field
    """
    issues = IssueCollector()
    clean: Dict[str, Any] = {}

    def present(name):
        return not partial or name in fields

    if present('title'):
        title = (fields.get('title') or '').strip()
        if len(title) < 5:
            issues.add('title', 'Title must be at least 5 characters')
        clean['title'] = title

    if present('description'):
        description = (fields.get('description') or '').strip()
        if len(description) < 10:
            issues.add('description', 'Description must be at least 10 characters')
        clean['description'] = description

    if present('price'):
        try:
            price = Decimal(str(fields.get('price')))
            if not price.is_finite() or price <= 0:
                raise InvalidOperation
            clean['price'] = price
        except (InvalidOperation, ValueError):
            issues.add('price', 'Price must be a positive number')

    if present('currency'):
        currency = (fields.get('currency') or settings_conf['default_currency']).strip().upper()
        clean['currency'] = currency

    if present('images'):
        images = fields.get('images') or []
        if not isinstance(images, list) or not images:
            issues.add('images', 'At least one image is required')
        elif not all(_is_url(image) for image in images):
            issues.add('images', 'Images must be http(s) URLs')
        else:
            clean['images'] = list(images)

    for name, enum in (('category', Category), ('rarity', Rarity)):
        if present(name):
            try:
                clean[name] = enum(fields.get(name)).value
            except ValueError:
                issues.add(name, f"{name.capitalize()} must be one of: {', '.join(e.value for e in enum)}")

    if partial and 'status' in fields:
        try:
            clean['status'] = ListingStatus(fields['status']).value
        except ValueError:
            issues.add('status', f"Invalid status: {fields['status']}")

    issues.raise_if_any()
    return clean


class ListingManager:
    """Manager class for listing operations."""

    def __init__(self, store: Optional[Store] = None):
        """Initialize listing manager.

        Args:
            store: Optional entity store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self):
        """Ensure entity store is available."""
        if not self.store:
            self.store = await get_store()

    def _check_owner(self, actor, listing: Dict[str, Any]) -> None:
        if actor is None:
            raise UnauthorizedError("Authentication required")
        if UserRole(actor.role) != UserRole.ADMIN and listing['seller_id'] != actor.id:
            raise ForbiddenError("You can only modify your own listings")

    async def create_listing(
        self,
        actor,
        title: str,
        description: str,
        price: Any,
        images: List[str],
        category: str,
        rarity: str,
        currency: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a new AVAILABLE listing owned by the actor.

        Raises:
            ForbiddenError: If the actor is not a seller or admin
            ValidationError: If any field is invalid
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")
        if UserRole(actor.role) not in (UserRole.SELLER, UserRole.ADMIN):
            raise ForbiddenError("Only sellers can create listings")

        clean = validate_listing_fields({
            'title': title,
            'description': description,
            'price': price,
            'currency': currency,
            'images': images,
            'category': category,
            'rarity': rarity
        })
        await self.ensure_store()

        listing = await self.store.create('listings', {
            **clean,
            'seller_id': actor.id,
            'status': ListingStatus.AVAILABLE.value
        })
        logger.info(f"Created listing {listing['id']} for seller {actor.id}")
        return listing

    async def get_listing(self, listing_id: UUID) -> Dict[str, Any]:
        """Get a listing with a summary of its seller.

        Raises:
            ListingNotFoundError: If the listing does not exist or was deleted
        """
        await self.ensure_store()
        listing = await self.store.get('listings', listing_id)
        if not listing or listing['status'] == ListingStatus.DELETED.value:
            raise ListingNotFoundError(f"Listing {listing_id} not found")

        seller = await self.store.get('users', listing['seller_id'])
        listing['seller'] = {k: seller[k] for k in SELLER_SUMMARY_FIELDS} if seller else None
        return listing

    async def search_listings(self, page: int = 1, limit: Optional[int] = None, **filters) -> Dict[str, Any]:
        """Search available listings. See ``listings.search.search``."""
        await self.ensure_store()
        return await search(self.store, page=page, limit=limit, **filters)

    async def update_listing(self, actor, listing_id: UUID, **fields) -> Dict[str, Any]:
        """Update the mutable fields of a listing.

        Raises:
            ListingNotFoundError: If the listing does not exist
            ForbiddenError: If the actor neither owns the listing nor is an admin
            ValidationError: If a field is invalid or not mutable
            ConflictError: If a seller changes status while a trade is in progress
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            issues = IssueCollector()
            for name in sorted(unknown):
                issues.add(name, 'Field cannot be updated')
            issues.raise_if_any()
        clean = validate_listing_fields(fields, partial=True)
        await self.ensure_store()

        async with self.store.atomic() as session:
            listing = await session.get('listings', listing_id, for_update=True)
            if not listing or listing['status'] == ListingStatus.DELETED.value:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            self._check_owner(actor, listing)

            if 'status' in clean and UserRole(actor.role) != UserRole.ADMIN:
                if ListingStatus(clean['status']) not in SELLER_STATUSES:
                    raise ForbiddenError("Sellers can only mark listings AVAILABLE or INACTIVE")
                if listing['status'] not in (s.value for s in SELLER_STATUSES):
                    raise ListingInUseError(f"Listing is {listing['status']} and cannot change status")

            if not clean:
                return listing
            updated = await session.update('listings', listing_id, clean)

        logger.info(f"Updated listing {listing_id}: {', '.join(sorted(clean))}")
        return updated

    async def delete_listing(self, actor, listing_id: UUID) -> Dict[str, Any]:
        """Soft delete a listing.

        Raises:
            ListingNotFoundError: If the listing does not exist
            ForbiddenError: If the actor neither owns the listing nor is an admin
            ListingInUseError: If the listing is reserved by an unfinished transaction
        """
        await self.ensure_store()

        async with self.store.atomic() as session:
            listing = await session.get('listings', listing_id, for_update=True)
            if not listing or listing['status'] == ListingStatus.DELETED.value:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            self._check_owner(actor, listing)

            if listing['status'] == ListingStatus.PENDING.value:
                raise ListingInUseError("Cannot delete a listing reserved by a transaction")
            open_count = await session.count('transactions', [
                eq('listing_id', listing_id),
                in_('status', sorted(s.value for s in OPEN_STATUSES))
            ])
            if open_count:
                raise ListingInUseError("Cannot delete a listing with unfinished transactions")

            deleted = await session.update('listings', listing_id, {'status': ListingStatus.DELETED.value})

        logger.info(f"Deleted listing {listing_id}")
        return deleted


__all__ = [
    'ListingManager',
    'ListingError',
    'ListingNotFoundError',
    'ListingInUseError',
    'validate_listing_fields',
    'search',
    'MUTABLE_FIELDS'
]
