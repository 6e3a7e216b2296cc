"""
Money helpers.
Every monetary amount in the marketplace is a Decimal with two places.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union, Optional

Number = Union[int, float, Decimal, str]

CENT = Decimal('0.01')


def to_decimal(value: Optional[Number]) -> Decimal:
    """
    Convert a number-like value to Decimal without float artifacts.

    Examples:
        to_decimal(10) -> Decimal('10')
        to_decimal(0.1) -> Decimal('0.1')
        to_decimal(None) -> Decimal('0')

    Raises:
        ValueError: if the value is not numeric, or is NaN or infinite.
    """
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f'Invalid amount: {value!r}')
    if not result.is_finite():
        raise ValueError(f'Invalid amount: {value!r}')
    return result


def quantize_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Optional[Number], symbol: str = '৳') -> str:
    """
    Format an amount for user-facing messages.

    - Thousands separator: comma
    - Up to 2 decimals, trailing zeros dropped

    Examples:
        format_money(1000) -> "৳1,000"
        format_money(1234.5) -> "৳1,234.5"
        format_money(None) -> "-"
    """
    if value is None or value == '':
        return '-'
    try:
        amount = quantize_money(value)
    except ValueError:
        return '-'

    text = f"{amount:,.2f}"
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return f"{symbol}{text}"
