"""
orderseal Capped Sale

A registration-gated, per-address capped sale that sells protocol tokens
for native currency through one pre-signed order.
"""

from orderseal.sale.controller import CappedSaleController, ContributionResult
from orderseal.sale.registration import RegistrationRegistry

__all__ = ["CappedSaleController", "ContributionResult", "RegistrationRegistry"]
