"""Listings API endpoints."""

from fastapi import APIRouter, Query, status, Security, Depends
from typing import Optional, List
from decimal import Decimal
from pydantic import BaseModel
from uuid import UUID

from auth import Actor, get_current_actor
from common import MarketError
from database import get_store
from database.store import Store
from listings import ListingManager
from ..errors import http_error, internal_error

router = APIRouter(
    prefix="/listings",
    tags=["Listings"]
)

# Model definitions
class CreateListingRequest(BaseModel):
    """Request model for creating a listing."""
    title: str
    description: str
    price: Decimal
    currency: Optional[str] = None
    images: List[str]
    category: str
    rarity: str

class UpdateListingRequest(BaseModel):
    """Request model for updating a listing."""
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    rarity: Optional[str] = None
    status: Optional[str] = None

""" Public Endpoints - No Authentication Required """
@router.get("")
async def search_listings(
    category: Optional[str] = Query(None),
    rarity: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    search: Optional[str] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    store: Store = Depends(get_store)
):
    """Search available listings with pagination metadata."""
    try:
        return await ListingManager(store).search_listings(
            category=category,
            rarity=rarity,
            min_price=min_price,
            max_price=max_price,
            search_term=search,
            page=page,
            limit=limit
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("search listings", e)

@router.get("/{listing_id}")
async def get_listing(listing_id: UUID, store: Store = Depends(get_store)):
    """Get a listing with its seller summary."""
    try:
        return await ListingManager(store).get_listing(listing_id)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("get listing", e)

""" Protected Endpoints - Authentication Required """
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_listing(
    request: CreateListingRequest,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Create a new listing for the authenticated seller."""
    try:
        return await ListingManager(store).create_listing(
            actor,
            title=request.title,
            description=request.description,
            price=request.price,
            currency=request.currency,
            images=request.images,
            category=request.category,
            rarity=request.rarity
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("create listing", e)

@router.patch("/{listing_id}")
async def update_listing(
    listing_id: UUID,
    request: UpdateListingRequest,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Update fields of a listing owned by the authenticated seller."""
    try:
        return await ListingManager(store).update_listing(
            actor, listing_id, **request.model_dump(exclude_unset=True)
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update listing", e)

@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: UUID,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Soft delete a listing with no unfinished transactions."""
    try:
        await ListingManager(store).delete_listing(actor, listing_id)
        return {"success": True}
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("delete listing", e)

# Export the router
__all__ = ['router']
