"""
Money helpers - decimal strings at the boundary, integer minor units inside

The engine never accepts a float as an authoritative amount: floats are
rejected outright, decimal strings are parsed exactly and must be
representable in the currency's minor unit.
"""

from decimal import Decimal, DecimalException, Inexact, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union

from wallet_engine.infrastructure.settings import get_settings
from wallet_engine.services.errors import InvalidAmountError

# Ceiling of the BIGINT money columns
STORAGE_MAX_MINOR_UNITS = 2 ** 63 - 1


def _minor_units() -> int:
    return get_settings().CURRENCY_MINOR_UNITS


def to_minor_units(value: Union[str, int, Decimal], *, allow_zero: bool = False) -> int:
    """
    Parse a decimal amount ("100.00", Decimal("100.5")) into integer minor units.

    Raises InvalidAmountError for floats, booleans, non-numeric strings,
    non-finite values, sub-minor-unit precision ("1.005") and non-positive amounts.
    Ints are interpreted as major units (100 -> 10000 cents).
    """
    if isinstance(value, (float, bool)):
        raise InvalidAmountError(
            "Amounts must be decimal strings, not floating-point numbers",
            {"amount": str(value)},
        )

    try:
        amount = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError("Amount is not a valid decimal number", {"amount": str(value)})

    if not amount.is_finite():
        raise InvalidAmountError("Amount must be finite", {"amount": str(value)})

    max_minor = max_amount_minor_units()
    # Decimal comparison is exact: no rounding before the bound check
    if amount > from_minor_units(max_minor):
        raise InvalidAmountError(
            "Amount exceeds the maximum allowed",
            {"amount": str(value), "max_amount": format_amount(max_minor)},
        )

    try:
        with localcontext() as ctx:
            ctx.traps[Inexact] = True
            scaled = amount.scaleb(_minor_units())
    except DecimalException:
        scaled = None
    if scaled is None or scaled != scaled.to_integral_value():
        raise InvalidAmountError(
            f"Amount is not representable in minor units ({_minor_units()} decimal places)",
            {"amount": str(value), "decimal_places": _minor_units()},
        )

    minor = int(scaled)
    if minor < 0 or (minor == 0 and not allow_zero):
        raise InvalidAmountError("Amount must be greater than 0", {"amount": str(value)})

    return minor


def max_amount_minor_units() -> int:
    """Largest accepted single amount in minor units (MAX_AMOUNT, capped by BIGINT)"""
    configured = Decimal(get_settings().MAX_AMOUNT).scaleb(_minor_units()).to_integral_value()
    return min(int(configured), STORAGE_MAX_MINOR_UNITS)


def from_minor_units(amount: int) -> Decimal:
    """Integer minor units -> Decimal with the currency's exponent (10000 -> Decimal('100.00'))"""
    exponent = Decimal(1).scaleb(-_minor_units())
    return Decimal(amount).scaleb(-_minor_units()).quantize(exponent)


def format_amount(amount: int) -> str:
    """Integer minor units -> decimal string ("100.00"), the API's money representation"""
    return str(from_minor_units(amount))


def apply_rate(amount: int, rate: Decimal) -> int:
    """amount * rate rounded half-up to the nearest minor unit"""
    return int((Decimal(amount) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))
