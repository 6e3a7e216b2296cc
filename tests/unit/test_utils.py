"""
Unit tests for money and date helpers.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from marketplace.utils.formatters import to_decimal, quantize_money, format_money
from marketplace.utils.dates import parse_date_like, has_passed


class TestMoney:
    def test_to_decimal_avoids_float_artifacts(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(None) == Decimal('0')
        assert to_decimal('') == Decimal('0')

    def test_to_decimal_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_decimal('ten')

    @pytest.mark.parametrize('value', ['NaN', 'sNaN', 'Infinity', '-Infinity', Decimal('NaN')])
    def test_to_decimal_rejects_non_finite(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_quantize_half_up(self):
        assert quantize_money('2.675') == Decimal('2.68')
        assert quantize_money(3) == Decimal('3.00')

    @pytest.mark.parametrize('value,expected', [
        (1000, '৳1,000'),
        (1234.5, '৳1,234.5'),
        ('99.99', '৳99.99'),
        (None, '-'),
    ])
    def test_format_money(self, value, expected):
        assert format_money(value) == expected

    def test_format_money_custom_symbol(self):
        assert format_money(2500, symbol='$') == '$2,500'


class TestDates:
    def test_parse_date_only(self):
        assert parse_date_like('2026-12-31') == date(2026, 12, 31)

    def test_parse_utc_suffix(self):
        parsed = parse_date_like('2026-12-31T10:00:00Z')
        assert isinstance(parsed, datetime)
        assert parsed.tzinfo is None

    def test_parse_rejects_other_types(self):
        with pytest.raises(TypeError):
            parse_date_like(20261231)

    def test_has_passed(self):
        now = datetime(2026, 6, 15, 9, 30)
        assert has_passed(datetime(2026, 6, 15, 9, 29), now) is True
        assert has_passed(date(2026, 6, 15), now) is False
        assert has_passed(date(2026, 6, 14), now) is True
