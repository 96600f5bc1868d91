# Overview: Decimal context, parsing and exact string storage for money and quantities.

from __future__ import annotations

from decimal import Decimal, Context, InvalidOperation, ROUND_HALF_UP, localcontext

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from .errors import ValidationError


# Financial precision: 28 significant digits, half-up rounding.
MONEY_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class DecimalString(TypeDecorator):
    """
    Decimal stored as its exact string form.

    SQLite has no native decimal type and SQLAlchemy's Numeric round-trips
    through float there; storing the string keeps every digit.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = to_decimal(value)
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce API input to Decimal.

    Floats go through repr() so 12.1 becomes Decimal('12.1'), not the
    binary expansion. Booleans, NaN and infinities are rejected.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", details={"field": field})
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", details={"field": field})
    else:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})
    return result


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Division that returns zero for a zero denominator."""
    if denominator == 0:
        return ZERO
    with localcontext(MONEY_CONTEXT):
        return numerator / denominator


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return ZERO
    with localcontext(MONEY_CONTEXT):
        return part / whole * HUNDRED


def decimal_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(value)
