"""Currency/percentage rounding shared by the pricing resolvers."""

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def round2(value: float) -> float:
    """Round half-up to two decimals.

    Python's built-in ``round`` uses banker's rounding, which would make
    ``2.675``-style midpoints depend on the binary representation. Going
    through ``str`` keeps the decimal the caller actually sees.
    """
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))
