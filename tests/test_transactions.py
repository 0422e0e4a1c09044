"""Tests for transaction creation and the status lifecycle."""

import asyncio
import uuid
from decimal import Decimal

import pytest

from common import (
    ConflictError, ForbiddenError, InvalidRequestError, NotFoundError,
    UnauthorizedError, ValidationError, ListingStatus, TransactionStatus, UserRole
)
from transactions import (
    TransactionManager, ListingUnavailableError, SelfPurchaseError,
    StatusUnchangedError, TransitionForbiddenError, TransactionNotFoundError
)
from transactions.escrow import FirstAvailableAssigner
from conftest import actor_for, make_listing, make_user


@pytest.fixture
def manager(store):
    return TransactionManager(store, escrow_assigner=FirstAvailableAssigner())


@pytest.mark.asyncio
async def test_direct_sale_scenario(store, manager, buyer, seller, listing):
    """Buy, pay and seller-complete a listing with no escrow agent."""
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    assert transaction['status'] == TransactionStatus.PENDING.value
    assert transaction['buyer_id'] == buyer['id']
    assert transaction['seller_id'] == seller['id']
    assert transaction['escrow_id'] is None
    assert transaction['amount'] == Decimal('1.0')
    assert transaction['currency'] == 'ETH'
    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.PENDING.value

    paid = await manager.update_transaction_status(
        actor_for(buyer), transaction['id'], 'PAID', tx_hash='0xabc'
    )
    assert paid['status'] == 'PAID'
    assert paid['tx_hash'] == '0xabc'

    completed = await manager.update_transaction_status(
        actor_for(seller), transaction['id'], TransactionStatus.COMPLETED
    )
    assert completed['status'] == 'COMPLETED'
    assert completed['completed_at'] is not None
    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.SOLD.value

    seller_after = await store.get('users', seller['id'])
    buyer_after = await store.get('users', buyer['id'])
    assert seller_after['transaction_count'] == 1
    assert seller_after['successful_transactions'] == 1
    assert buyer_after['transaction_count'] == 1
    assert buyer_after['successful_transactions'] == 0


@pytest.mark.asyncio
async def test_mediated_sale_requires_escrow_to_complete(store, manager, buyer, seller, listing):
    escrow = await make_user(store, UserRole.ESCROW)
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    assert transaction['escrow_id'] == escrow['id']

    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')

    with pytest.raises(TransitionForbiddenError):
        await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')
    assert (await store.get('transactions', transaction['id']))['status'] == 'PAID'

    await manager.update_transaction_status(actor_for(escrow), transaction['id'], 'IN_ESCROW')
    completed = await manager.update_transaction_status(
        actor_for(escrow), transaction['id'], 'COMPLETED'
    )
    assert completed['status'] == 'COMPLETED'
    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.SOLD.value


@pytest.mark.asyncio
async def test_second_completion_is_rejected_without_double_counting(store, manager, buyer, seller, admin, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')
    await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')

    with pytest.raises(ForbiddenError):
        await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')
    with pytest.raises(StatusUnchangedError):
        await manager.update_transaction_status(actor_for(admin), transaction['id'], 'COMPLETED')

    assert (await store.get('users', seller['id']))['transaction_count'] == 1
    assert (await store.get('users', buyer['id']))['transaction_count'] == 1


@pytest.mark.asyncio
async def test_concurrent_completions_apply_once(store, manager, buyer, seller, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')

    results = await asyncio.gather(
        manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED'),
        manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED'),
        return_exceptions=True
    )
    assert sum(1 for r in results if isinstance(r, dict)) == 1
    assert sum(1 for r in results if isinstance(r, ForbiddenError)) == 1
    assert (await store.get('users', seller['id']))['successful_transactions'] == 1


@pytest.mark.asyncio
async def test_recompleting_after_dispute_does_not_recount(store, manager, buyer, seller, admin, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')
    await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')
    await manager.update_transaction_status(actor_for(admin), transaction['id'], 'DISPUTED')
    await manager.update_transaction_status(actor_for(admin), transaction['id'], 'COMPLETED')

    assert (await store.get('users', seller['id']))['transaction_count'] == 1
    assert (await store.get('users', buyer['id']))['transaction_count'] == 1


@pytest.mark.asyncio
async def test_buyer_cannot_complete_directly(manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    with pytest.raises(ForbiddenError):
        await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'COMPLETED')


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ['CANCELLED', 'REFUNDED'])
async def test_cancel_and_refund_restore_listing(store, manager, buyer, admin, listing, target):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')
    await manager.update_transaction_status(actor_for(admin), transaction['id'], target)

    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.AVAILABLE.value
    assert (await store.get('users', buyer['id']))['transaction_count'] == 0


@pytest.mark.asyncio
async def test_refund_after_completion_makes_listing_available(store, manager, buyer, seller, admin, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')
    await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')
    await manager.update_transaction_status(actor_for(admin), transaction['id'], 'REFUNDED')

    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.AVAILABLE.value
    # Stats are never decremented
    assert (await store.get('users', seller['id']))['successful_transactions'] == 1


@pytest.mark.asyncio
async def test_disputes_leave_listing_untouched(store, manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')
    disputed = await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'DISPUTED')

    assert disputed['status'] == 'DISPUTED'
    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.PENDING.value


@pytest.mark.asyncio
async def test_empty_payment_references_are_ignored(manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    updated = await manager.update_transaction_status(
        actor_for(buyer), transaction['id'], 'PAID', tx_hash='', escrow_address=''
    )
    assert updated['tx_hash'] is None
    assert updated['escrow_address'] is None


@pytest.mark.asyncio
async def test_update_errors(manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])

    with pytest.raises(UnauthorizedError):
        await manager.update_transaction_status(None, transaction['id'], 'PAID')
    with pytest.raises(ValidationError) as excinfo:
        await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'SHIPPED')
    assert excinfo.value.issues[0]['field'] == 'status'
    with pytest.raises(TransactionNotFoundError):
        await manager.update_transaction_status(actor_for(buyer), uuid.uuid4(), 'PAID')


@pytest.mark.asyncio
async def test_create_on_unavailable_listing_conflicts(store, manager, buyer, seller):
    sold = await make_listing(store, seller, status=ListingStatus.SOLD.value)
    with pytest.raises(ListingUnavailableError) as excinfo:
        await manager.create_transaction(actor_for(buyer), sold['id'])
    assert isinstance(excinfo.value, ConflictError)
    assert (await store.get('listings', sold['id']))['status'] == ListingStatus.SOLD.value
    assert await store.count('transactions') == 0


@pytest.mark.asyncio
async def test_second_buyer_conflicts(store, manager, buyer, listing):
    other = await make_user(store, UserRole.BUYER)
    await manager.create_transaction(actor_for(buyer), listing['id'])
    with pytest.raises(ConflictError):
        await manager.create_transaction(actor_for(other), listing['id'])
    assert await store.count('transactions') == 1


@pytest.mark.asyncio
async def test_create_errors(store, manager, buyer, seller, listing):
    with pytest.raises(NotFoundError):
        await manager.create_transaction(actor_for(buyer), uuid.uuid4())
    with pytest.raises(SelfPurchaseError) as excinfo:
        await manager.create_transaction(actor_for(seller), listing['id'])
    assert isinstance(excinfo.value, InvalidRequestError)
    with pytest.raises(UnauthorizedError):
        await manager.create_transaction(None, listing['id'])
    assert (await store.get('listings', listing['id']))['status'] == ListingStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_create_opens_chat_and_honours_currency(store, manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'], currency='USDC')
    assert transaction['currency'] == 'USDC'
    chats = await store.find('chats')
    assert [c['transaction_id'] for c in chats] == [transaction['id']]


@pytest.mark.asyncio
async def test_failed_side_effect_rolls_back(store, manager, buyer, seller, listing, monkeypatch):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    await manager.update_transaction_status(actor_for(buyer), transaction['id'], 'PAID')

    async def broken(*args, **kwargs):
        raise RuntimeError("stats unavailable")

    monkeypatch.setattr(manager, '_apply_side_effects', broken)
    with pytest.raises(RuntimeError):
        await manager.update_transaction_status(actor_for(seller), transaction['id'], 'COMPLETED')

    current = await store.get('transactions', transaction['id'])
    assert current['status'] == 'PAID'
    assert current['completed_at'] is None


@pytest.mark.asyncio
async def test_get_transaction_access(store, manager, buyer, seller, admin, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    stranger = await make_user(store, UserRole.BUYER)

    for actor in (buyer, seller, admin):
        detail = await manager.get_transaction(actor_for(actor), transaction['id'])
        assert detail['listing']['id'] == listing['id']
        assert detail['reviews'] == []
        assert detail['messages'] == []

    with pytest.raises(ForbiddenError):
        await manager.get_transaction(actor_for(stranger), transaction['id'])
    with pytest.raises(NotFoundError):
        await manager.get_transaction(actor_for(buyer), uuid.uuid4())


@pytest.mark.asyncio
async def test_list_transactions_filters(store, manager, buyer, seller):
    escrow = await make_user(store, UserRole.ESCROW)
    first = await make_listing(store, seller)
    second = await make_listing(store, seller, title="Galaxy skin bundle")
    t1 = await manager.create_transaction(actor_for(buyer), first['id'])
    t2 = await manager.create_transaction(actor_for(buyer), second['id'])
    await manager.update_transaction_status(actor_for(buyer), t2['id'], 'PAID')

    mine = await manager.list_transactions(actor_for(buyer))
    assert [t['id'] for t in mine['transactions']] == [t2['id'], t1['id']]
    assert mine['pagination'] == {'total': 2, 'page': 1, 'limit': 10, 'totalPages': 1}
    assert mine['transactions'][0]['listing']['title'] == "Galaxy skin bundle"

    paid = await manager.list_transactions(actor_for(buyer), status='PAID')
    assert [t['id'] for t in paid['transactions']] == [t2['id']]

    as_buyer = await manager.list_transactions(actor_for(seller), role='buyer')
    assert as_buyer['transactions'] == []
    as_seller = await manager.list_transactions(actor_for(seller), role='seller', limit=1, page=2)
    assert [t['id'] for t in as_seller['transactions']] == [t1['id']]
    assert as_seller['pagination']['totalPages'] == 2

    mediated = await manager.list_transactions(actor_for(escrow))
    assert mediated['pagination']['total'] == 2

    with pytest.raises(ForbiddenError):
        await manager.list_transactions(actor_for(buyer), role='escrow')
    with pytest.raises(ValidationError):
        await manager.list_transactions(actor_for(buyer), role='broker')
    with pytest.raises(ValidationError):
        await manager.list_transactions(actor_for(buyer), page=0)


@pytest.mark.asyncio
async def test_get_transaction_includes_party_summaries(store, manager, buyer, seller, listing):
    escrow = await make_user(store, UserRole.ESCROW, name="Eve Escrow")
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])

    detail = await manager.get_transaction(actor_for(buyer), transaction['id'])
    assert detail['buyer']['name'] == "Bob Buyer"
    assert set(detail['buyer']) == {'id', 'name', 'username', 'image'}
    assert detail['seller']['id'] == seller['id']
    assert detail['seller']['verified_seller'] is False
    assert 'rating' in detail['seller']
    assert detail['escrow']['name'] == "Eve Escrow"
    assert 'hashed_password' not in detail['escrow']


@pytest.mark.asyncio
async def test_unmediated_transaction_has_no_escrow_summary(manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])
    detail = await manager.get_transaction(actor_for(buyer), transaction['id'])
    assert detail['escrow_id'] is None
    assert detail['escrow'] is None


@pytest.mark.asyncio
async def test_status_input_is_case_insensitive(manager, buyer, listing):
    transaction = await manager.create_transaction(actor_for(buyer), listing['id'])

    updated = await manager.update_transaction_status(actor_for(buyer), transaction['id'], ' paid ')
    assert updated['status'] == TransactionStatus.PAID.value

    for status in ('paid', 'Paid', 'PAID'):
        result = await manager.list_transactions(actor_for(buyer), status=status)
        assert [t['id'] for t in result['transactions']] == [transaction['id']]
