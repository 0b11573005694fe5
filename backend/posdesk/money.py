# Overview: Fixed-point currency helpers and the Money column type.

"""
Currency arithmetic.

Amounts are decimal.Decimal in Python, quantized to the cent with
ROUND_HALF_UP, and stored as integer cents. Floats never enter the
calculation: float inputs are converted through str() first.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy.types import BigInteger, TypeDecorator

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Fixed VAT rate applied to STANDARD products
VAT_RATE = Decimal("0.18")

VAT_STANDARD = "STANDARD"
VAT_ZERO_RATED = "ZERO_RATED"
VAT_EXEMPT = "EXEMPT"
VAT_CATEGORIES = (VAT_STANDARD, VAT_ZERO_RATED, VAT_EXEMPT)

# Largest amount a Money column accepts: 99,999,999.99
MAX_AMOUNT = Decimal("99999999.99")


def to_decimal(value) -> Decimal:
    """Convert int/str/float/Decimal to a cent-quantized Decimal."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to an amount")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Cannot convert {value!r} to an amount")
    if not value.is_finite():
        raise ValueError(f"Cannot convert {value!r} to an amount")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def has_sub_cent_digits(value: Decimal) -> bool:
    return value != value.quantize(CENT)


def vat_for(total_price: Decimal, vat_category: str) -> Decimal:
    """VAT owed on a line total; only STANDARD products are taxed."""
    if vat_category != VAT_STANDARD:
        return ZERO
    return (total_price * VAT_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return f"{to_decimal(value):.2f}"


class Money(TypeDecorator):
    """
    Decimal amount persisted as integer cents.

    Python value: Decimal with two decimal places.
    DB value: BIGINT number of cents.
    """
    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(to_decimal(value) * 100)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(int(value)) / 100).quantize(CENT)
