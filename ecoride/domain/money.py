"""Rounding helpers shared by fares, eco-impact and plan prices.

Python's ``round`` uses banker's rounding on the binary value, so
``round(2.675, 2)`` gives ``2.67``.  Stored amounts instead round half-up on
the shortest decimal representation of the float, which is what a rider
reading the receipt expects.
"""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def round_to_unit(value: float) -> int:
    """Round to the nearest whole currency unit, halves going up."""
    return int(Decimal(repr(float(value))).quantize(Decimal(1), rounding=ROUND_HALF_UP))
