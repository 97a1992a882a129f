"""
Normalization of gateway amounts.

The gateway reports amounts in minor units (paise) and, depending on the API
version and client, the JSON number may decode as an int, a float, or arrive
as a numeric string. Anything else is rejected rather than coerced.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import UnsupportedAmountFormatError

MINOR_UNITS_PER_MAJOR = 100
_CENTS = Decimal("0.01")


def _to_decimal(raw) -> Decimal:
    # bool is an int subclass; True must not become 0.01
    if isinstance(raw, bool) or raw is None:
        raise UnsupportedAmountFormatError(f"unsupported amount type: {type(raw).__name__}")

    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        value = Decimal(repr(raw))
    elif isinstance(raw, str):
        try:
            value = Decimal(raw.strip())
        except InvalidOperation:
            raise UnsupportedAmountFormatError(f"unsupported amount value: {raw!r}")
    else:
        raise UnsupportedAmountFormatError(f"unsupported amount type: {type(raw).__name__}")

    if not value.is_finite():
        raise UnsupportedAmountFormatError(f"unsupported amount value: {raw!r}")
    return value


def normalize_amount(raw) -> Decimal:
    """Minor units as reported by the gateway -> major units, two decimal places."""
    value = _to_decimal(raw)
    return (value / MINOR_UNITS_PER_MAJOR).quantize(_CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Major units -> integer minor units for order creation."""
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).to_integral_value(rounding=ROUND_HALF_UP))
