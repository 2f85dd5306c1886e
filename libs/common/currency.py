"""Money helpers for the cafeteria client.

API / display unit: Rupees (Decimal, e.g. Decimal("52.50")).
Gateway unit: paise (smallest INR unit, 100 paise = ₹1).

All arithmetic stays in Decimal; floats are only accepted at the edges and are
converted through their string form so 0.1 stays 0.1.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

PAISE_PER_RUPEE: int = 100
CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_decimal(value: Number) -> Decimal:
    """Coerce a numeric value to Decimal. Raises ValueError on garbage."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def round2(value: Number) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def rupees_to_paise(rupees: Number) -> int:
    """Convert rupees to paise (round half-up). ₹1 = 100 paise."""
    return int(round2(rupees) * PAISE_PER_RUPEE)


def paise_to_rupees(paise: int) -> Decimal:
    """Convert paise to rupees. 100 paise = ₹1."""
    return (Decimal(paise) / PAISE_PER_RUPEE).quantize(CENT)


def format_rupees(amount: Number) -> str:
    """Render an amount for user-facing messages, e.g. ₹52.50."""
    return f"₹{round2(amount):,.2f}"
