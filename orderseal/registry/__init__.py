from orderseal.registry.tokens import TokenRegistry

__all__ = ["TokenRegistry"]
