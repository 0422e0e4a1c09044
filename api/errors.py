"""Translation of marketplace errors to HTTP responses."""

import logging

from fastapi import HTTPException, status

from common import MarketError, ValidationError

logger = logging.getLogger(__name__)


def http_error(error: MarketError) -> HTTPException:
    """Build the HTTPException reporting an expected failure."""
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=error.status_code,
            detail={"message": str(error), "issues": error.issues}
        )
    return HTTPException(status_code=error.status_code, detail=str(error))


def internal_error(action: str, error: Exception) -> HTTPException:
    """Log an unexpected failure and hide its details from the client."""
    logger.error(f"Failed to {action}: {error}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )
