"""Authentication API endpoints."""

from fastapi import APIRouter, HTTPException, status, Depends, Security
from pydantic import BaseModel

from auth import AuthManager, Actor, get_current_actor
from common import MarketError, UserRole
from database import get_store
from database.store import Store
from ..errors import http_error, internal_error

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

class RegisterRequest(BaseModel):
    """Request model for registering an account."""
    name: str
    email: str
    password: str
    role: str = UserRole.BUYER.value

class LoginRequest(BaseModel):
    """Request model for password login."""
    email: str
    password: str

class LoginResponse(BaseModel):
    """Response model for login."""
    token: str
    expires_at: str

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, store: Store = Depends(get_store)):
    """Register a buyer or seller account."""
    try:
        user = await AuthManager(store).register(
            request.name, request.email, request.password, request.role.upper()
        )
        return {"user": user}
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("register user", e)

@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, store: Store = Depends(get_store)):
    """Check credentials and create a session."""
    try:
        result = await AuthManager(store).login(request.email, request.password)
        return {"token": result["token"], "expires_at": result["expires_at"]}
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("log in", e)

@router.post("/logout")
async def logout(
    actor: Actor = Security(get_current_actor),
    store: Store = Depends(get_store)
):
    """Log out the current user by revoking their session."""
    try:
        await AuthManager(store).logout(actor.id)
        return {"success": True}
    except MarketError as e:
        raise http_error(e)
    except Exception as e:
        raise internal_error("log out", e)

@router.get("/verify")
async def verify_token(actor: Actor = Security(get_current_actor)):
    """Verify the current session token."""
    return {
        "valid": True,
        "id": actor.id,
        "role": actor.role
    }

# Export the router
__all__ = ['router']
