"""Fixed-point money helpers (two decimal places)"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert int/float/str/Decimal/None into a Decimal rounded to cents"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() first so floats keep their printed value, not the binary one
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for v in values:
        total += to_money(v)
    return total


def percent(part: Decimal, whole: Decimal) -> int:
    """Whole-number percentage, 0 when the base is empty"""
    if not whole:
        return 0
    return int((Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def average(total: Decimal, count: int) -> int:
    if count <= 0:
        return 0
    return int((Decimal(total) / count).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
