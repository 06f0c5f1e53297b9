"""RPC provider, timestamp -> block resolution and chunked log scanning."""
__all__ = [
    "provider",
    "explorer",
    "scanner",
]
