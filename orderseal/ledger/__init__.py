"""
orderseal Token Ledger - balances, allowances and atomic scopes.
"""

from orderseal.ledger.tokens import NATIVE, UNLIMITED_ALLOWANCE, TokenLedger

__all__ = ["NATIVE", "UNLIMITED_ALLOWANCE", "TokenLedger"]
