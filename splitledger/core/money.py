"""
Money Helpers

DESIGN DECISION: Amounts are integer cents inside the core.
Decimal only appears where data enters (user input, storage rows)
and where it leaves (balances shown to the user).

Rounding is always half away from zero, which is what
ROUND_HALF_UP means for Python's Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Final, Union

from splitledger.core.errors import InputIntegrityError


CENTS_PER_UNIT: Final[int] = 100
CENT: Final[Decimal] = Decimal("0.01")

# Symbols for the currencies groups are usually created with.
# Anything else is rendered with its ISO code as a prefix.
CURRENCY_SYMBOLS: Final[dict[str, str]] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "CNY": "¥",
    "KRW": "₩",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "HKD": "HK$",
    "SGD": "S$",
    "MXN": "MX$",
    "CHF": "CHF ",
    "THB": "฿",
}

MoneyInput = Union[Decimal, int, str, float]


def to_decimal(value: MoneyInput) -> Decimal:
    """
    Parse a money value into a Decimal.
    
    Floats go through str() so 0.1 stays 0.1 instead of
    0.1000000000000000055511151231257827.
    
    Raises:
        InputIntegrityError: If the value is missing or not a finite number
    """
    if value is None or isinstance(value, bool):
        raise InputIntegrityError(f"Expected a money value, got {value!r}")
    
    try:
        if isinstance(value, float):
            parsed = Decimal(str(value))
        elif isinstance(value, str):
            parsed = Decimal(value.strip())
        else:
            parsed = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InputIntegrityError(f"Not a valid money value: {value!r}")
    
    if not parsed.is_finite():
        raise InputIntegrityError(f"Not a valid money value: {value!r}")
    
    return parsed


def to_cents(value: MoneyInput) -> int:
    """Convert a money value to integer cents, rounding half away from zero."""
    scaled = to_decimal(value) * CENTS_PER_UNIT
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to an exact two-place Decimal."""
    return Decimal(cents).scaleb(-2)


def quantize_amount(value: MoneyInput) -> Decimal:
    """Round a money value to two places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: MoneyInput, currency: str) -> str:
    """
    Render an amount for display, e.g. "$1,234.50" or "-€3.33".
    
    This is presentation only; nothing in the core parses it back.
    """
    amount = quantize_amount(value)
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
