"""Shared fixtures: an in-memory store and helpers to seed it."""

from decimal import Decimal
from typing import Any, Dict

import pytest_asyncio

from auth import Actor
from common import ListingStatus, UserRole
from database import MemoryStore

DUMMY_HASH = "$2b$12$invalidinvalidinvalidinvalidinvalidinvalidinvalidinval"


async def make_user(store, role: UserRole = UserRole.BUYER, name: str = None, **extra) -> Dict[str, Any]:
    """Insert a user directly, skipping password hashing."""
    count = await store.count('users')
    data = {
        'name': name or f"{role.value.title()} {count}",
        'email': f"user{count}@example.com",
        'hashed_password': DUMMY_HASH,
        'role': role.value,
        'rating': Decimal('0'),
        'verified_seller': False,
        'transaction_count': 0,
        'successful_transactions': 0
    }
    data.update(extra)
    return await store.create('users', data)


async def make_listing(store, seller: Dict[str, Any], **extra) -> Dict[str, Any]:
    data = {
        'seller_id': seller['id'],
        'title': "Renegade Raider skin",
        'description': "Rare season one outfit, full account access",
        'price': Decimal('1.0'),
        'currency': 'ETH',
        'images': ['https://img.example.com/raider.png'],
        'category': 'SKIN',
        'rarity': 'LEGENDARY',
        'status': ListingStatus.AVAILABLE.value
    }
    data.update(extra)
    return await store.create('listings', data)


def actor_for(user: Dict[str, Any]) -> Actor:
    return Actor(id=user['id'], role=user['role'])


@pytest_asyncio.fixture
async def store():
    """Fresh in-memory store per test."""
    return MemoryStore()


@pytest_asyncio.fixture
async def buyer(store):
    return await make_user(store, UserRole.BUYER, name="Bob Buyer")


@pytest_asyncio.fixture
async def seller(store):
    return await make_user(store, UserRole.SELLER, name="Sally Seller")


@pytest_asyncio.fixture
async def admin(store):
    return await make_user(store, UserRole.ADMIN, name="Ada Admin")


@pytest_asyncio.fixture
async def listing(store, seller):
    return await make_listing(store, seller)
