"""Enumerations shared by the marketplace modules."""

from enum import Enum


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    IN_ESCROW = "IN_ESCROW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"


TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REFUNDED,
})

# Non-terminal statuses; a transaction in one of these keeps its listing reserved
OPEN_STATUSES = frozenset(set(TransactionStatus) - TERMINAL_STATUSES)


class ListingStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"
    SOLD = "SOLD"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


class UserRole(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    ESCROW = "ESCROW"
    ADMIN = "ADMIN"


class Category(str, Enum):
    ACCOUNT = "ACCOUNT"
    SKIN = "SKIN"
    CURRENCY = "CURRENCY"
    EMOTE = "EMOTE"
    PICKAXE = "PICKAXE"
    CODE = "CODE"
    OTHER = "OTHER"


class Rarity(str, Enum):
    COMMON = "COMMON"
    UNCOMMON = "UNCOMMON"
    RARE = "RARE"
    EPIC = "EPIC"
    LEGENDARY = "LEGENDARY"
    MYTHIC = "MYTHIC"
