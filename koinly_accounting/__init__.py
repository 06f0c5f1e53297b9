"""koinly_accounting: export liquidation router swaps as Koinly ledger rows."""
__version__ = "0.1.0"
__all__ = [
    "adapters",
    "chain",
    "config",
    "sinks",
    "errors",
    "models",
    "pipeline",
    "runner",
]
