"""Tests for bp_common.money."""

from decimal import Decimal

from src.bp_common.money import (
    ZERO,
    is_whole,
    money_to_display,
    round_money,
    round_money_down,
    round_money_up,
    round_qty,
    to_decimal,
)


class TestToDecimal:
    def test_float_goes_through_str(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_str(self) -> None:
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_decimal_passthrough(self) -> None:
        value = Decimal("3.14")
        assert to_decimal(value) is value


class TestRounding:
    def test_round_money_half_up(self) -> None:
        assert round_money("10.005") == Decimal("10.01")
        assert round_money("10.004") == Decimal("10.00")

    def test_directed_money_rounding(self) -> None:
        assert round_money_up("10.001") == Decimal("10.01")
        assert round_money_up("10.00") == Decimal("10.00")
        assert round_money_down("10.009") == Decimal("10.00")

    def test_round_qty_six_places(self) -> None:
        assert round_qty("1.23456789") == Decimal("1.234568")

    def test_is_whole(self) -> None:
        assert is_whole(Decimal("10"))
        assert is_whole(Decimal("10.000"))
        assert not is_whole(Decimal("10.5"))

    def test_zero_constant(self) -> None:
        assert ZERO == 0


class TestDisplay:
    def test_positive(self) -> None:
        assert money_to_display(Decimal("1234.5")) == "$1,234.50"

    def test_negative(self) -> None:
        assert money_to_display(Decimal("-12")) == "-$12.00"
