"""
orderseal/core/models.py

Data model for orders, signatures, fill results and emitted events.

Conventions:
    - Addresses are EIP-55 checksum strings. Normalized on construction.
    - "No taker" and "no fee recipient" are None, never the zero address.
      Only the codec's byte layout renders None as twenty zero bytes.
    - Amounts are Python ints in base units, 0 <= amount < 2**256.
    - to_dict() renders amounts as decimal strings so JSON consumers and
      the JCS canonicalizer never see integers above 2**53.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address

UINT256_MAX = 2 ** 256 - 1

_ADDRESS_FIELDS = ("exchange_address", "maker", "maker_token", "taker_token")
_OPTIONAL_ADDRESS_FIELDS = ("taker", "fee_recipient")
_AMOUNT_FIELDS = (
    "maker_token_amount",
    "taker_token_amount",
    "maker_fee",
    "taker_fee",
    "expiration",
    "salt",
)


def normalize_address(value: Any, name: str = "address") -> str:
    """Return the checksum form of `value`. Raises ValueError if not an address."""
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{name} is not a valid address: {value!r}")
    return to_checksum_address(value)


def normalize_optional_address(value: Any, name: str = "address") -> Optional[str]:
    if value is None or value == "":
        return None
    return normalize_address(value, name)


def _as_uint(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got bool")
    if isinstance(value, str):
        value = int(value, 0)
    if not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range: {value}")
    return value


# ─────────────────────────────────────────────────────────────
# Orders
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Order:
    """
    An offer by `maker` to trade `maker_token_amount` of `maker_token`
    for `taker_token_amount` of `taker_token`.

    Immutable once built. Two orders with identical fields share one
    fingerprint; `salt` exists only to give otherwise-identical orders
    distinct identities.
    """
    exchange_address:   str
    maker:              str
    taker:              Optional[str]
    maker_token:        str
    taker_token:        str
    fee_recipient:      Optional[str]
    maker_token_amount: int
    taker_token_amount: int
    maker_fee:          int
    taker_fee:          int
    expiration:         int
    salt:               int

    def __post_init__(self):
        for name in _ADDRESS_FIELDS:
            object.__setattr__(self, name, normalize_address(getattr(self, name), name))
        for name in _OPTIONAL_ADDRESS_FIELDS:
            object.__setattr__(
                self, name, normalize_optional_address(getattr(self, name), name)
            )
        for name in _AMOUNT_FIELDS:
            object.__setattr__(self, name, _as_uint(getattr(self, name), name))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if f.name in _AMOUNT_FIELDS else value
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Order":
        """Build an order from a dict. Missing optional addresses mean None."""
        try:
            return Order(
                exchange_address=   data["exchange_address"],
                maker=              data["maker"],
                taker=              data.get("taker"),
                maker_token=        data["maker_token"],
                taker_token=        data["taker_token"],
                fee_recipient=      data.get("fee_recipient"),
                maker_token_amount= data["maker_token_amount"],
                taker_token_amount= data["taker_token_amount"],
                maker_fee=          data.get("maker_fee", 0),
                taker_fee=          data.get("taker_fee", 0),
                expiration=         data["expiration"],
                salt=               data.get("salt", 0),
            )
        except KeyError as exc:
            raise ValueError(f"Order is missing field {exc.args[0]!r}") from exc


@dataclass(frozen=True)
class Signature:
    """Recoverable secp256k1 signature. r and s are 0x-prefixed 32-byte hex."""
    v: int
    r: str
    s: str

    def to_dict(self) -> Dict[str, Any]:
        return {"v": self.v, "r": self.r, "s": self.s}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Signature":
        return Signature(v=int(data["v"]), r=str(data["r"]), s=str(data["s"]))


@dataclass(frozen=True)
class SignedOrder:
    """An order plus the maker's signature over its fingerprint."""
    order:     Order
    signature: Signature

    def to_dict(self) -> Dict[str, Any]:
        data = self.order.to_dict()
        data.update(self.signature.to_dict())
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SignedOrder":
        return SignedOrder(order=Order.from_dict(data), signature=Signature.from_dict(data))


# ─────────────────────────────────────────────────────────────
# Events
# ─────────────────────────────────────────────────────────────

class EventType:
    """
    event_type string constants for everything the core emits.
    """
    FILL             = "fill"
    SALE_INITIALIZED = "sale_initialized"
    SALE_FINISHED    = "sale_finished"


@dataclass(frozen=True)
class FillEvent:
    """Emitted exactly once per nonzero fill."""
    maker:               str
    taker:               str
    fee_recipient:       Optional[str]
    maker_token:         str
    taker_token:         str
    filled_maker_amount: int
    filled_taker_amount: int
    paid_maker_fee:      int
    paid_taker_fee:      int
    tokens:              str
    order_hash:          str

    event_type = EventType.FILL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maker":               self.maker,
            "taker":               self.taker,
            "fee_recipient":       self.fee_recipient,
            "maker_token":         self.maker_token,
            "taker_token":         self.taker_token,
            "filled_maker_amount": str(self.filled_maker_amount),
            "filled_taker_amount": str(self.filled_taker_amount),
            "paid_maker_fee":      str(self.paid_maker_fee),
            "paid_taker_fee":      str(self.paid_taker_fee),
            "tokens":              self.tokens,
            "order_hash":          self.order_hash,
        }


@dataclass(frozen=True)
class SaleInitializedEvent:
    """Full order payload, signature included."""
    order:     Order
    signature: Signature
    timestamp: int

    event_type = EventType.SALE_INITIALIZED

    def to_dict(self) -> Dict[str, Any]:
        data = self.order.to_dict()
        data.update(self.signature.to_dict())
        data["timestamp"] = str(self.timestamp)
        return data


@dataclass(frozen=True)
class SaleFinishedEvent:
    timestamp: int

    event_type = EventType.SALE_FINISHED

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": str(self.timestamp)}


# ─────────────────────────────────────────────────────────────
# Results and state
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FillResult:
    """Outcome of SettlementEngine.fill(). event is None for zero fills."""
    order_hash:          str
    filled_taker_amount: int = 0
    filled_maker_amount: int = 0
    paid_maker_fee:      int = 0
    paid_taker_fee:      int = 0
    event:               Optional[FillEvent] = None

    @property
    def is_empty(self) -> bool:
        return self.filled_taker_amount == 0


class SaleState(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE        = "active"
    FINISHED      = "finished"


@dataclass(frozen=True)
class TokenMetadata:
    address:    str
    name:       str
    symbol:     str
    decimals:   int = 18
    url:        str = ""
    ipfs_hash:  str = "0x" + "00" * 32
    swarm_hash: str = "0x" + "00" * 32

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
