"""Reviews left by trade partners after a completed transaction.

A participant may review the other side of a COMPLETED transaction once.
Each new review recomputes the target user's average rating in the same
unit of work.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Any
from uuid import UUID

from common import (
    TransactionStatus, ForbiddenError, NotFoundError, ConflictError,
    UnauthorizedError, IssueCollector, check_page, paginate
)
from config import settings_conf
from database import get_store
from database.query import eq
from database.store import Store
from users import party_view

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500

class ReviewError(Exception):
    """Base exception for review operations."""
    pass

class ReviewNotAllowedError(ReviewError, ForbiddenError):
    """Raised when the reviewer or target are not the two sides of the trade."""
    pass

class DuplicateReviewError(ReviewError, ConflictError):
    """Raised when the reviewer already reviewed this transaction."""
    pass


def average_rating(reviews: List[Dict[str, Any]]) -> Decimal:
    if not reviews:
        return Decimal('0')
    total = sum(Decimal(review['rating']) for review in reviews)
    return (total / len(reviews)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


class ReviewManager:
    """Manages review creation and listing."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store

    async def ensure_store(self):
        """Ensure entity store is available."""
        if not self.store:
            self.store = await get_store()

    async def create_review(
        self,
        actor,
        transaction_id: UUID,
        target_user_id: UUID,
        rating: Any,
        comment: Optional[str] = None
    ) -> Dict[str, Any]:
        """Review the other side of a completed transaction.

        Raises:
            UnauthorizedError: If there is no actor
            ValidationError: If rating is not 1..5 or the comment is too long
            NotFoundError: If the transaction does not exist
            ConflictError: If the transaction is not COMPLETED
            ReviewNotAllowedError: If the actor is not a party or targets themselves/a third party
            DuplicateReviewError: If the actor already reviewed this transaction
        """
        if actor is None:
            raise UnauthorizedError("Authentication required")

        issues = IssueCollector()
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            issues.add('rating', 'Rating must be an integer between 1 and 5')
        if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
            issues.add('comment', f'Comment must be at most {MAX_COMMENT_LENGTH} characters')
        issues.raise_if_any()

        await self.ensure_store()

        async with self.store.atomic() as session:
            transaction = await session.get('transactions', transaction_id, for_update=True)
            if not transaction:
                raise NotFoundError("Transaction not found")
            if transaction['status'] != TransactionStatus.COMPLETED.value:
                raise ConflictError("Only completed transactions can be reviewed")

            parties = {transaction['buyer_id']: transaction['seller_id'],
                       transaction['seller_id']: transaction['buyer_id']}
            if actor.id not in parties:
                raise ReviewNotAllowedError("Only the buyer or seller can review this transaction")
            if target_user_id != parties[actor.id]:
                raise ReviewNotAllowedError("You can only review the other party of the transaction")

            existing = await session.find_one('reviews', [
                eq('reviewer_id', actor.id),
                eq('transaction_id', transaction_id)
            ])
            if existing:
                raise DuplicateReviewError("You have already reviewed this transaction")

            review = await session.create('reviews', {
                'rating': rating,
                'comment': comment,
                'reviewer_id': actor.id,
                'target_user_id': target_user_id,
                'transaction_id': transaction_id
            })

            received = await session.find('reviews', [eq('target_user_id', target_user_id)])
            rating_avg = average_rating(received)
            await session.update('users', target_user_id, {'rating': rating_avg})

        logger.info(
            f"Review {review['id']} by {actor.id} for {target_user_id} "
            f"on transaction {transaction_id}; new rating {rating_avg}"
        )
        return review

    async def list_reviews(self, user_id: UUID, page: int = 1, limit: Optional[int] = None) -> Dict[str, Any]:
        """List reviews received by a user, newest first, with rating stats.

        Only the requested page is loaded. The average comes from the rating
        kept on the user record, which every new review refreshes.
        """
        if limit is None:
            limit = settings_conf['default_page_size']
        limit, offset = check_page(page, limit, settings_conf['max_page_size'])
        await self.ensure_store()

        filters = [eq('target_user_id', user_id)]
        total = await self.store.count('reviews', filters)
        page_rows = await self.store.find('reviews', filters, limit=limit, offset=offset)

        for review in page_rows:
            review['reviewer'] = party_view(await self.store.get('users', review['reviewer_id']))

        target = await self.store.get('users', user_id)
        rating = target.get('rating') if target else None
        return {
            'reviews': page_rows,
            'stats': {
                'averageRating': float(rating) if rating is not None else 0.0,
                'totalReviews': total
            },
            'pagination': paginate(total, page, limit)
        }


__all__ = [
    'ReviewManager',
    'ReviewError',
    'ReviewNotAllowedError',
    'DuplicateReviewError',
    'average_rating'
]
