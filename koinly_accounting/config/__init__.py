"""Static chain tables, run settings and shared formatting helpers."""
__all__ = [
    "registry",
    "settings",
    "time",
    "units",
]
