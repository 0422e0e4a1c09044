"""Who may move a transaction to which status.

The decision depends only on the actor's role and relation to the
transaction, the transaction's current status and escrow assignment, and
the requested status. Nothing here touches the store.
"""

from typing import Any, Mapping, NamedTuple, Optional

from common import TransactionStatus, UserRole

DENIED_MESSAGE = "You don't have permission to update this transaction to the requested status"

# Parties may open a dispute only while funds are committed
DISPUTABLE = frozenset({TransactionStatus.PAID, TransactionStatus.IN_ESCROW})


class Decision(NamedTuple):
    allowed: bool
    reason: str = ""


ALLOW = Decision(True)


def _deny(reason: str = DENIED_MESSAGE) -> Decision:
    return Decision(False, reason)


def can_transition(
    actor: Optional[Any],
    transaction: Optional[Mapping[str, Any]],
    target: TransactionStatus
) -> Decision:
    """Decide whether ``actor`` may set ``transaction`` to ``target``.

    Args:
        actor: Object with ``id`` and ``role`` attributes, or None
        transaction: Transaction record, or None
        target: Requested status

    Returns:
        Decision with ``allowed`` and a human readable ``reason`` when denied
    """
    if actor is None:
        return _deny("Authentication required")
    if transaction is None:
        return _deny("Transaction not found")

    role = UserRole(actor.role)
    current = TransactionStatus(transaction['status'])
    target = TransactionStatus(target)
    escrow_id = transaction.get('escrow_id')

    if role == UserRole.ADMIN:
        return ALLOW
    if role == UserRole.ESCROW and escrow_id is not None and actor.id == escrow_id:
        return ALLOW

    if actor.id == transaction['buyer_id']:
        if current == TransactionStatus.PENDING and target == TransactionStatus.PAID:
            return ALLOW
        if current in DISPUTABLE and target == TransactionStatus.DISPUTED:
            return ALLOW

    if actor.id == transaction['seller_id']:
        if (current == TransactionStatus.PAID and target == TransactionStatus.COMPLETED
                and escrow_id is None):
            return ALLOW
        if current in DISPUTABLE and target == TransactionStatus.DISPUTED:
            return ALLOW
        if target == TransactionStatus.COMPLETED and escrow_id is not None:
            return _deny("This transaction is mediated; only the escrow agent can complete it")

    return _deny()


def is_involved(actor: Any, transaction: Mapping[str, Any]) -> bool:
    """True for the buyer, seller, assigned escrow agent, or an admin."""
    return (
        UserRole(actor.role) == UserRole.ADMIN
        or actor.id in (transaction['buyer_id'], transaction['seller_id'])
        or (transaction.get('escrow_id') is not None and actor.id == transaction['escrow_id'])
    )
