"""Review API endpoints."""

from fastapi import APIRouter, Query, status, Security, Depends
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID

from auth import Actor, get_current_actor
from common import MarketError
from database import get_store
from database.store import Store
from reviews import ReviewManager
from ..errors import http_error, internal_error

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"]
)

class CreateReviewRequest(BaseModel):
    """Request model for reviewing a trade partner."""
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: UUID = Field(alias="transactionId")
    target_user_id: UUID = Field(alias="targetUserId")
    rating: int
    comment: Optional[str] = None

@router.get("")
async def list_reviews(
    user_id: UUID = Query(..., alias="userId"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    store: Store = Depends(get_store)
):
    """List reviews received by a user, with rating stats."""
    try:
        return await ReviewManager(store).list_reviews(user_id, page=page, limit=limit)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("list reviews", e)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    request: CreateReviewRequest,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Review the other party of a completed transaction."""
    try:
        return await ReviewManager(store).create_review(
            actor,
            request.transaction_id,
            request.target_user_id,
            request.rating,
            request.comment
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("create review", e)

# Export the router
__all__ = ['router']
