"""HTTP-level tests running the FastAPI app against an in-memory store."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from api import app
from auth import AuthManager
from common import UserRole
from database import MemoryStore, get_store

PASSWORD = "hunter2hunter2"

LISTING = {
    "title": "Travis Scott skin",
    "description": "Astronomical event outfit, never refunded",
    "price": "2.5",
    "images": ["https://img.example.com/travis.png"],
    "category": "SKIN",
    "rarity": "LEGENDARY"
}


@pytest.fixture
def store():
    store = MemoryStore()
    asyncio.run(AuthManager(store).create_user("Escrow Agent", "escrow@example.com", PASSWORD, UserRole.ESCROW))
    return store


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def login(client, email):
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def register(client, name, email, role="BUYER"):
    response = client.post("/auth/register", json={
        "name": name, "email": email, "password": PASSWORD, "role": role
    })
    assert response.status_code == 201, response.text
    return response.json()["user"], login(client, email)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_mediated_trade_end_to_end(client):
    seller, seller_auth = register(client, "Sally", "sally@example.com", "SELLER")
    buyer, buyer_auth = register(client, "Bob", "bob@example.com")
    escrow_auth = login(client, "escrow@example.com")

    response = client.post("/listings", json=LISTING, headers=seller_auth)
    assert response.status_code == 201, response.text
    listing = response.json()

    response = client.get("/listings", params={"search": "travis"})
    assert response.json()["pagination"]["total"] == 1

    response = client.post("/transactions", json={"listingId": listing["id"]}, headers=buyer_auth)
    assert response.status_code == 201, response.text
    transaction = response.json()
    assert transaction["status"] == "PENDING"
    assert transaction["escrow_id"] is not None

    response = client.post("/transactions", json={"listingId": listing["id"]}, headers=buyer_auth)
    assert response.status_code == 409

    url = f"/transactions/{transaction['id']}"
    response = client.patch(url, json={"status": "PAID", "txHash": "0xfeed"}, headers=buyer_auth)
    assert response.status_code == 200, response.text
    assert response.json()["tx_hash"] == "0xfeed"

    response = client.get("/transactions", params={"status": "paid"}, headers=buyer_auth)
    assert response.status_code == 200, response.text
    assert [t["id"] for t in response.json()["transactions"]] == [transaction["id"]]

    response = client.get(url, headers=buyer_auth)
    assert response.json()["escrow"]["name"] == "Escrow Agent"

    response = client.patch(url, json={"status": "COMPLETED"}, headers=seller_auth)
    assert response.status_code == 403

    response = client.patch(url, json={"status": "COMPLETED"}, headers=escrow_auth)
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None

    response = client.get(f"/listings/{listing['id']}")
    assert response.json()["status"] == "SOLD"

    response = client.post("/reviews", json={
        "transactionId": transaction["id"],
        "targetUserId": seller["id"],
        "rating": 5,
        "comment": "Fast and honest"
    }, headers=buyer_auth)
    assert response.status_code == 201, response.text

    response = client.get("/reviews", params={"userId": seller["id"]})
    assert response.json()["stats"] == {"averageRating": 5.0, "totalReviews": 1}

    response = client.get("/profile", headers=seller_auth)
    assert response.json()["successful_transactions"] == 1

    response = client.get("/transactions", params={"role": "seller"}, headers=seller_auth)
    assert [t["id"] for t in response.json()["transactions"]] == [transaction["id"]]


def test_chat_endpoints(client):
    _, seller_auth = register(client, "Sally", "sally@example.com", "SELLER")
    _, buyer_auth = register(client, "Bob", "bob@example.com")
    listing = client.post("/listings", json=LISTING, headers=seller_auth).json()
    transaction = client.post("/transactions", json={"listingId": listing["id"]}, headers=buyer_auth).json()

    response = client.post(f"/chat/{transaction['id']}", json={"content": "Sending payment now"}, headers=buyer_auth)
    assert response.status_code == 201

    assert client.get("/chat/unread", headers=seller_auth).json() == {"unread": 1}
    chat = client.get(f"/chat/{transaction['id']}", headers=seller_auth).json()
    assert [m["content"] for m in chat["messages"]] == ["Sending payment now"]
    assert client.get("/chat/unread", headers=seller_auth).json() == {"unread": 0}

    response = client.post(f"/chat/{transaction['id']}", json={"content": ""}, headers=buyer_auth)
    assert response.status_code == 400


def test_errors_are_mapped(client):
    _, buyer_auth = register(client, "Bob", "bob@example.com")

    response = client.post("/listings", json=LISTING, headers=buyer_auth)
    assert response.status_code == 403

    response = client.post("/auth/register", json={"name": "X", "email": "bad", "password": "short"})
    assert response.status_code == 400
    fields = {issue["field"] for issue in response.json()["detail"]["issues"]}
    assert fields == {"name", "email", "password"}

    response = client.get("/listings/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404

    response = client.get("/profile", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401

    response = client.get("/profile")
    assert response.status_code in (401, 403)

    response = client.post("/auth/login", json={"email": "bob@example.com", "password": "wrong-password"})
    assert response.status_code == 401


def test_profile_endpoints(client):
    _, buyer_auth = register(client, "Bob", "bob@example.com")

    response = client.put("/profile", json={"username": "bobby", "walletAddress": "0xabc"}, headers=buyer_auth)
    assert response.status_code == 200
    assert response.json()["wallet_address"] == "0xabc"

    response = client.post("/profile/become-seller", headers=buyer_auth)
    assert response.json()["role"] == "SELLER"
    response = client.post("/profile/become-seller", headers=buyer_auth)
    assert response.status_code == 409

    response = client.post("/auth/logout", headers=buyer_auth)
    assert response.status_code == 200
    assert client.get("/auth/verify", headers=buyer_auth).status_code == 401
