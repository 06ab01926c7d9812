"""
orderseal/__init__.py

orderseal: signed-order settlement with proportional fees and partial fills,
plus a capped, registration-gated token sale built on it.
"""

__version__ = "0.1.0"

from orderseal.core.models import (
    EventType,
    FillEvent,
    FillResult,
    Order,
    SaleState,
    Signature,
    SignedOrder,
    TokenMetadata,
)
from orderseal.core.codec import fingerprint, sign_order, verify_signature
from orderseal.core.crypto import Ed25519KeyManager, MakerKeyManager
from orderseal.ledger.tokens import NATIVE, TokenLedger
from orderseal.registry.tokens import TokenRegistry
from orderseal.journal.journal import FileJournal, MemoryJournal
from orderseal.settlement.engine import SettlementEngine
from orderseal.sale.controller import CappedSaleController

__all__ = [
    # Model
    "EventType",
    "FillEvent",
    "FillResult",
    "Order",
    "SaleState",
    "Signature",
    "SignedOrder",
    "TokenMetadata",
    # Codec and keys
    "fingerprint",
    "sign_order",
    "verify_signature",
    "Ed25519KeyManager",
    "MakerKeyManager",
    # Components
    "NATIVE",
    "TokenLedger",
    "TokenRegistry",
    "FileJournal",
    "MemoryJournal",
    "SettlementEngine",
    "CappedSaleController",
]
