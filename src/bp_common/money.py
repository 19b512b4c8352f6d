"""Decimal arithmetic helpers for virtual money and share quantities.

Money: 2 decimal places, ROUND_HALF_UP (matches NUMERIC(18,2) columns).
Trade cash moves to cents against the trader: buys round up, sells round down.
Quantities, prices and average cost: 6 decimal places (NUMERIC(18,6)).
Never use float for arithmetic; convert to float only when rendering JSON.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Decimal

MONEY_QUANT = Decimal("0.01")
QTY_QUANT = Decimal("0.000001")
ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """Coerce int/str/float/Decimal to Decimal (floats go through str to avoid binary noise)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)  # type: ignore[arg-type]


def round_money(value: object) -> Decimal:
    """Round to cents: round_money('10.005') -> Decimal('10.01')."""
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def round_money_up(value: object) -> Decimal:
    """round_money_up('0.001') -> Decimal('0.01')."""
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_UP)


def round_money_down(value: object) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_DOWN)


def round_qty(value: object) -> Decimal:
    return to_decimal(value).quantize(QTY_QUANT, rounding=ROUND_HALF_UP)


def is_whole(value: Decimal) -> bool:
    return value == value.to_integral_value()


def money_to_display(value: object) -> str:
    """Format for humans: Decimal('1234.5') -> '$1,234.50', Decimal('-12') -> '-$12.00'."""
    amount = round_money(value)
    if amount < 0:
        return f"-${-amount:,.2f}"
    return f"${amount:,.2f}"
