"""Chat API endpoints for per-transaction conversations."""

from uuid import UUID
from fastapi import APIRouter, Depends, Security, status
from pydantic import BaseModel

from auth import Actor, get_current_actor
from chat import ChatManager
from common import MarketError
from database import get_store
from database.store import Store
from ..errors import http_error, internal_error

# Create router
router = APIRouter(
    prefix="/chat",
    tags=["Chat"]
)

class MessageCreate(BaseModel):
    """Request model for posting a message."""
    content: str

@router.get("/unread")
async def unread_count(
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Number of unread messages addressed to the authenticated user."""
    try:
        return {"unread": await ChatManager(store).unread_count(actor)}
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("count unread messages", e)

@router.get("/{transaction_id}")
async def get_chat(
    transaction_id: UUID,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Get the chat of a transaction and mark incoming messages read."""
    try:
        return await ChatManager(store).get_chat(actor, transaction_id)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("get chat", e)

@router.post("/{transaction_id}", status_code=status.HTTP_201_CREATED)
async def send_message(
    transaction_id: UUID,
    message: MessageCreate,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Post a message to the chat of a transaction."""
    try:
        return await ChatManager(store).send_message(actor, transaction_id, message.content)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("send message", e)

# Export the router
__all__ = ['router']
