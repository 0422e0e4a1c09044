"""Tests for the transaction status permission matrix."""

import itertools
import uuid

import pytest

from auth import Actor
from common import TransactionStatus, UserRole
from transactions.permissions import can_transition, is_involved

BUYER = uuid.uuid4()
SELLER = uuid.uuid4()
ESCROW = uuid.uuid4()
OTHER_ESCROW = uuid.uuid4()
STRANGER = uuid.uuid4()
ADMIN = uuid.uuid4()

S = TransactionStatus
# Every (current, target) combination
ALL_PAIRS = list(itertools.product(S, S))


def tx(status, escrow_id=None):
    return {
        'id': uuid.uuid4(),
        'status': status.value,
        'buyer_id': BUYER,
        'seller_id': SELLER,
        'escrow_id': escrow_id,
        'listing_id': uuid.uuid4()
    }


buyer = Actor(id=BUYER, role=UserRole.BUYER)
seller = Actor(id=SELLER, role=UserRole.SELLER)
escrow = Actor(id=ESCROW, role=UserRole.ESCROW)
other_escrow = Actor(id=OTHER_ESCROW, role=UserRole.ESCROW)
stranger = Actor(id=STRANGER, role=UserRole.BUYER)
admin = Actor(id=ADMIN, role=UserRole.ADMIN)


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_admin_may_set_any_status(current, target):
    assert can_transition(admin, tx(current), target).allowed
    assert can_transition(admin, tx(current, ESCROW), target).allowed


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_assigned_escrow_may_set_any_status(current, target):
    assert can_transition(escrow, tx(current, ESCROW), target).allowed


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_unassigned_escrow_is_denied(current, target):
    assert not can_transition(other_escrow, tx(current, ESCROW), target).allowed
    assert not can_transition(escrow, tx(current), target).allowed


def test_escrow_id_match_requires_escrow_role():
    impostor = Actor(id=ESCROW, role=UserRole.BUYER)
    assert not can_transition(impostor, tx(S.PAID, ESCROW), S.COMPLETED).allowed


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_buyer_matrix(current, target):
    allowed = (
        (current == S.PENDING and target == S.PAID)
        or (current in (S.PAID, S.IN_ESCROW) and target == S.DISPUTED)
    )
    for escrow_id in (None, ESCROW):
        assert can_transition(buyer, tx(current, escrow_id), target).allowed == allowed


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_seller_matrix(current, target):
    disputes = current in (S.PAID, S.IN_ESCROW) and target == S.DISPUTED
    direct_complete = current == S.PAID and target == S.COMPLETED
    assert can_transition(seller, tx(current), target).allowed == (disputes or direct_complete)
    assert can_transition(seller, tx(current, ESCROW), target).allowed == disputes


@pytest.mark.parametrize("current,target", ALL_PAIRS)
def test_strangers_are_denied(current, target):
    assert not can_transition(stranger, tx(current), target).allowed


def test_buyer_cannot_skip_payment():
    decision = can_transition(buyer, tx(S.PENDING), S.COMPLETED)
    assert not decision.allowed
    assert decision.reason


def test_seller_completion_blocked_when_mediated():
    decision = can_transition(seller, tx(S.PAID, ESCROW), S.COMPLETED)
    assert not decision.allowed
    assert "escrow" in decision.reason


def test_missing_actor_or_transaction_fails_closed():
    assert not can_transition(None, tx(S.PAID), S.COMPLETED).allowed
    assert not can_transition(admin, None, S.COMPLETED).allowed


def test_decision_is_pure():
    actors = [buyer, seller, escrow, other_escrow, stranger, admin]
    for actor, current, target, escrow_id in itertools.product(actors, S, S, (None, ESCROW)):
        transaction = tx(current, escrow_id)
        first = can_transition(actor, transaction, target)
        second = can_transition(actor, dict(transaction), target)
        assert first == second
        assert transaction['status'] == current.value


def test_is_involved():
    mediated = tx(S.PAID, ESCROW)
    assert is_involved(buyer, mediated)
    assert is_involved(seller, mediated)
    assert is_involved(escrow, mediated)
    assert is_involved(admin, mediated)
    assert not is_involved(other_escrow, mediated)
    assert not is_involved(stranger, mediated)
