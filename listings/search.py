""" Search listings in the entity store """
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any
import logging

from common import ListingStatus, Category, Rarity, IssueCollector, check_page, paginate
from config import settings_conf
from database.query import eq, gte, lte, contains

logger = logging.getLogger(__name__)

async def search(
        store,
        category: Optional[str] = None,
        rarity: Optional[str] = None,
        min_price: Optional[Any] = None,
        max_price: Optional[Any] = None,
        search_term: Optional[str] = None,
        seller_id=None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Search AVAILABLE listings with various filters.

        Args:
            store: Entity store to query
            category: Optional category to filter by
            rarity: Optional rarity to filter by
            min_price: Optional minimum price
            max_price: Optional maximum price
            search_term: Optional text to search in title and description
            seller_id: Optional seller to filter by
            page: Page number starting at 1
            limit: Page size (default from settings)

        Returns:
            Dict containing:
                - listings: Matching listings, newest first
                - pagination: total, page, limit, totalPages
        """
        if limit is None:
            limit = settings_conf['default_page_size']
        limit, offset = check_page(page, limit, settings_conf['max_page_size'])

        issues = IssueCollector()
        filters = [eq('status', ListingStatus.AVAILABLE.value)]

        for name, enum, value in (('category', Category, category), ('rarity', Rarity, rarity)):
            if value:
                try:
                    filters.append(eq(name, enum(value).value))
                except ValueError:
                    issues.add(name, f"Unknown {name}: {value}")

        for name, builder, value in (('minPrice', gte, min_price), ('maxPrice', lte, max_price)):
            if value is not None and value != '':
                try:
                    filters.append(builder('price', Decimal(str(value))))
                except InvalidOperation:
                    issues.add(name, 'Price must be a number')

        if seller_id:
            filters.append(eq('seller_id', seller_id))
        issues.raise_if_any("Invalid search parameters")

        any_of = []
        if search_term and search_term.strip():
            term = search_term.strip()
            any_of = [contains('title', term), contains('description', term)]

        total = await store.count('listings', filters, any_of)
        listings = await store.find('listings', filters, any_of, limit=limit, offset=offset)
        logger.debug(f"Listing search matched {total} listing(s)")

        return {
            'listings': listings,
            'pagination': paginate(total, page, limit)
        }
