"""
orderseal Settlement Engine

Fills signed orders:
- verifies expiration, taker and maker signature
- computes proportional maker amount and fees (floor division)
- moves all four transfers as one atomic unit
- tracks cumulative fill per order fingerprint

Invariants:
- cumulative fill never exceeds taker_token_amount
- zero fills move nothing and emit nothing
"""

from orderseal.settlement.engine import SettlementEngine

__all__ = ["SettlementEngine"]
