"""
Formatting helpers for on-chain fixed point amounts.
"""


def format_units(value: int, decimals: int) -> str:
    """
    Render a base-unit integer as a decimal string.

    Trailing fractional zeros are dropped but at least one fractional digit
    is kept, so 100_000000 at 6 decimals renders as ``100.0``.
    """
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10 ** decimals)
    digits = str(fraction).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{whole}.{digits or '0'}"
