"""
Money helpers for the contract engine.

All amounts are Decimal, rounded to the cent with ROUND_HALF_UP.
Parsing is tolerant: form input arrives as strings with either decimal
separator, stray whitespace or a currency sign, and anything unusable
resolves to zero instead of raising.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal('0')
CENT = Decimal('0.01')

# Whitespace and currency signs are the only noise tolerated around a number
_NOISE = re.compile(r"[\s€$£]")
_NUMBER = re.compile(r"-?(\d+([.,]\d*)?|[.,]\d+)")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places (half up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value) -> Decimal:
    """Parse a monetary input into a Decimal, falling back to 0."""
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO

    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return ZERO
        return parsed if parsed.is_finite() else ZERO

    if not isinstance(value, str):
        return ZERO

    cleaned = _NOISE.sub("", value)
    if not _NUMBER.fullmatch(cleaned):
        return ZERO
    cleaned = cleaned.replace(",", ".")
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return parsed if parsed.is_finite() else ZERO


def parse_optional_money(value) -> Decimal | None:
    """Like parse_money, but keeps "not provided" distinct from zero."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return parse_money(value)
