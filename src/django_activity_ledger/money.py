"""Integer-cents amount primitives.

Amounts are stored as whole cents. Multiplication by a decimal quantity is
done in Decimal and rounded half-up back to whole cents, so a line total
never drifts between create and update.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union


CENTS_PER_UNIT = 100
QUANTITY_PLACES = Decimal("0.01")


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert a number to Decimal without binary float artefacts.

    Raises:
        InvalidOperation: If the value is not a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"Not a number: {value!r}")
    return Decimal(str(value).strip())


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of cents to a whole number of cents."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total_cents(quantity, unit_price_cents: int) -> int:
    """Line total = quantity x unit price, rounded half-up to whole cents.

    Usage:
        line_total_cents(Decimal("0.5"), 60000)  # 30000
        line_total_cents(Decimal("0.33"), 1001)  # 330 (330.33 rounded)
    """
    return round_half_up(to_decimal(quantity) * Decimal(int(unit_price_cents)))


def sum_cents(values: Iterable[int]) -> int:
    return sum((int(v) for v in values), 0)


def cents_to_major(cents: int) -> Decimal:
    """Convert whole cents to major units with two decimal places."""
    return (Decimal(int(cents)) / CENTS_PER_UNIT).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def format_major(cents: int) -> str:
    """Format cents as a major-unit string, e.g. 65000 -> "650.00"."""
    return f"{cents_to_major(cents):.2f}"


def format_quantity(quantity) -> str:
    return f"{to_decimal(quantity).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP):.2f}"
