"""Profile management endpoints."""

from fastapi import APIRouter, Depends, Security
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from auth import Actor, get_current_actor
from common import MarketError
from database import get_store
from database.store import Store
from users import UserManager
from ..errors import http_error, internal_error

router = APIRouter(
    prefix="/profile",
    tags=["Profile"]
)

class ProfileUpdate(BaseModel):
    """Model for profile updates."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    image: Optional[str] = None

@router.get("")
async def get_profile(
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Get the authenticated user's profile."""
    try:
        return await UserManager(store).get_profile(actor)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("get profile", e)

@router.put("")
async def update_profile(
    update: ProfileUpdate,
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Update the authenticated user's profile."""
    try:
        return await UserManager(store).update_profile(
            actor,
            name=update.name,
            username=update.username,
            bio=update.bio,
            wallet_address=update.wallet_address,
            image=update.image
        )
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("update profile", e)

@router.post("/become-seller")
async def become_seller(
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Upgrade the authenticated buyer to a seller account."""
    try:
        return await UserManager(store).become_seller(actor)
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("upgrade account", e)

# Export the router
__all__ = ['router']
