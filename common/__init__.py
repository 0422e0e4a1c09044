"""Shared building blocks: enums, the error taxonomy and pagination helpers."""

from .enums import (
    TransactionStatus, ListingStatus, UserRole, Category, Rarity,
    OPEN_STATUSES, TERMINAL_STATUSES
)
from .errors import (
    MarketError, UnauthorizedError, ForbiddenError, NotFoundError,
    ValidationError, InvalidRequestError, ConflictError, IssueCollector
)
from .pagination import check_page, paginate

__all__ = [
    'TransactionStatus', 'ListingStatus', 'UserRole', 'Category', 'Rarity',
    'OPEN_STATUSES', 'TERMINAL_STATUSES',
    'MarketError', 'UnauthorizedError', 'ForbiddenError', 'NotFoundError',
    'ValidationError', 'InvalidRequestError', 'ConflictError', 'IssueCollector',
    'check_page', 'paginate'
]
