"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Registration, login and session management
- Creating, searching and managing listings
- Buying listings and driving transactions through their lifecycle
- Per-transaction chat
- Reviews and profiles
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_TITLE = "Game Item Marketplace API"
API_VERSION = "1.0.0"

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing API...")
    # Database setup is handled in __main__.py
    yield
    logger.info("Shutting down API...")

# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description="REST API for trading virtual game items with optional escrow mediation",
    version=API_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "status": "running"
    }

# Import and include all routers
from .auth import router as auth_router
from .listings import router as listings_router
from .transactions import router as transactions_router
from .chat import router as chat_router
from .reviews import router as reviews_router
from .profile import router as profile_router

# Include all routers
app.include_router(auth_router)
app.include_router(listings_router)
app.include_router(transactions_router)
app.include_router(chat_router)
app.include_router(reviews_router)
app.include_router(profile_router)

__all__ = ['app']
