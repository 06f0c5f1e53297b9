"""Event adapters: decode router logs into Koinly ledger records."""
__all__ = [
    "liquidation_router",
]
