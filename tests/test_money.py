"""Tests for integer-cents amount primitives."""
from decimal import Decimal, InvalidOperation

import pytest

from django_activity_ledger.money import (
    cents_to_major,
    format_major,
    format_quantity,
    line_total_cents,
    round_half_up,
    to_decimal,
)


class TestLineTotal:
    """Line total = quantity x unit price, rounded half-up to whole cents."""

    def test_half_day(self):
        assert line_total_cents(Decimal("0.5"), 60000) == 30000

    def test_fractional_cents_round_half_up(self):
        # 0.5 x 1001 = 500.5 cents
        assert line_total_cents(Decimal("0.5"), 1001) == 501

    def test_fractional_cents_round_down_below_half(self):
        # 0.33 x 1001 = 330.33 cents
        assert line_total_cents(Decimal("0.33"), 1001) == 330

    def test_string_quantity_has_no_float_drift(self):
        # 0.1 + 0.2 style drift would give 29999
        assert line_total_cents("0.3", 100000) == 30000

    def test_zero_price(self):
        assert line_total_cents(Decimal("2"), 0) == 0

    def test_same_inputs_same_result(self):
        """No drift between create and update of the same line."""
        assert line_total_cents("1.25", 33333) == line_total_cents(Decimal("1.25"), 33333)


class TestConversions:

    def test_round_half_up(self):
        assert round_half_up(Decimal("2.5")) == 3
        assert round_half_up(Decimal("2.49")) == 2

    def test_to_decimal_rejects_bool(self):
        with pytest.raises(InvalidOperation):
            to_decimal(True)

    def test_to_decimal_from_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_cents_to_major(self):
        assert cents_to_major(65000) == Decimal("650.00")

    def test_format_major(self):
        assert format_major(65000) == "650.00"
        assert format_major(5) == "0.05"

    def test_format_quantity(self):
        assert format_quantity(Decimal("0.5")) == "0.50"
        assert format_quantity(1) == "1.00"
