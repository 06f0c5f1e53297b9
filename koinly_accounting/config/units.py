"""Exact unit formatting for token amounts and fees."""
import decimal

# uint256 has at most 78 digits; keep every one of them
_CONTEXT = decimal.Context(prec=100)


def format_units(amount: int, decimals: int) -> str:
    """Return amount / 10**decimals as a plain decimal string.

    Trailing zeros are dropped: format_units(1_000_000, 6) == "1".
    """
    if amount < 0:
        raise ValueError(f"expected non-negative amount, got {amount}")
    value = decimal.Decimal(int(amount)).scaleb(-int(decimals), context=_CONTEXT)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
