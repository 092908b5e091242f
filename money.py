import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

AmountLike = Union[Decimal, float, int, str, None]


def _to_cents(amount: Decimal) -> Decimal:
    if not amount.is_finite():
        return ZERO
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ZERO


def safe_amount(value: AmountLike) -> Decimal:
    """Coerce ``value`` to a finite Decimal rounded to whole cents.

    NaN, infinities, ``None`` and unparseable strings all collapse to zero so
    that a bad stored figure can never poison a sum or a balance. Rounding
    happens here, before anything is added up, so a running balance always
    equals the sum of the stored amounts.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return _to_cents(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ZERO
        return _to_cents(Decimal(str(value)))
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    return _to_cents(amount)


def signed_amount(amount: AmountLike, is_income: bool) -> Decimal:
    value = safe_amount(amount)
    return value if is_income else -value
