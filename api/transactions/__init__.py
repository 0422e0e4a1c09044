"""Transaction API endpoints."""

from fastapi import APIRouter, Query, status, Security, Depends
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID

from auth import Actor, get_current_actor
from common import MarketError
from database import get_store
from database.store import Store
from transactions import TransactionManager
from ..errors import http_error, internal_error

router = APIRouter(
    prefix="/transactions",
    tags=["Transactions"]
)

class CreateTransactionRequest(BaseModel):
    """Request model for buying a listing."""
    model_config = ConfigDict(populate_by_name=True)

    listing_id: UUID = Field(alias="listingId")
    currency: Optional[str] = None

class UpdateStatusRequest(BaseModel):
    """Request model for a status change."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    tx_hash: Optional[str] = Field(None, alias="txHash")
    escrow_address: Optional[str] = Field(None, alias="escrowAddress")

@router.get("")
async def list_transactions(
    role: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """List the authenticated user's transactions."""
    try:
        return await TransactionManager(store).list_transactions(
            actor, role=role, status=status_filter, page=page, limit=limit
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("list transactions", e)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    request: CreateTransactionRequest,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Start buying a listing."""
    try:
        return await TransactionManager(store).create_transaction(
            actor, request.listing_id, request.currency
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("create transaction", e)

@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: UUID,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Get a transaction the authenticated user is involved in."""
    try:
        return await TransactionManager(store).get_transaction(actor, transaction_id)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("get transaction", e)

@router.patch("/{transaction_id}")
async def update_transaction(
    transaction_id: UUID,
    request: UpdateStatusRequest,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Change the status of a transaction."""
    try:
        return await TransactionManager(store).update_transaction_status(
            actor,
            transaction_id,
            request.status,
            tx_hash=request.tx_hash,
            escrow_address=request.escrow_address
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update transaction", e)

# Export the router
__all__ = ['router']
