"""
orderseal Exception Hierarchy

All exceptions inherit from OrderSealError for easy catching.
"""


class OrderSealError(Exception):
    """Base exception for all orderseal errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ── Settlement ────────────────────────────────────────────────

class SettlementError(OrderSealError):
    """Raised when an order cannot be settled"""
    pass


class InvalidOrder(SettlementError):
    """Raised when order fields are unusable (zero amounts, wrong token pair or taker)"""
    pass


class InvalidFillAmount(SettlementError):
    """Raised when a requested fill amount is negative"""
    pass


class OrderExpired(SettlementError):
    """Raised when an order is filled after its expiration"""
    pass


class TakerMismatch(SettlementError):
    """Raised when an order is reserved for a different taker"""
    pass


class InvalidSignature(SettlementError):
    """Raised when the order signature does not recover the maker"""
    pass


class InsufficientBalanceOrAllowance(SettlementError):
    """Raised when a strict fill cannot move one of its four transfers"""
    pass


class InsufficientRemaining(SettlementError):
    """Raised by fill-or-kill when less than the requested amount remains"""
    pass


# ── Authorization ─────────────────────────────────────────────

class AuthorizationError(OrderSealError):
    """Raised when authorization fails"""
    pass


class Unauthorized(AuthorizationError):
    """Raised when an owner-only operation is called by someone else"""
    pass


# ── Sale lifecycle ────────────────────────────────────────────

class SaleError(OrderSealError):
    """Raised when a sale operation is not allowed in the current state"""
    pass


class AlreadyInitialized(SaleError):
    pass


class NotInitialized(SaleError):
    pass


class SaleFinished(SaleError):
    pass


class NotRegistered(SaleError):
    """Raised when an address outside the allow-list contributes"""
    pass


class InvalidCap(SaleError):
    """Raised when the per-address cap is set below zero"""
    pass


# ── Token ledger boundary ─────────────────────────────────────

class TransferError(OrderSealError):
    """Raised when the token ledger rejects a movement"""
    pass


class InsufficientBalance(TransferError):
    pass


class InsufficientAllowance(TransferError):
    pass


# ── Ambient ───────────────────────────────────────────────────

class RegistryError(OrderSealError):
    """Raised when token registry operations fail"""
    pass


class JournalError(OrderSealError):
    """Raised when event journal operations fail"""
    pass


class ConfigError(OrderSealError):
    """Raised when configuration is missing or invalid"""
    pass
