"""
Unit tests for RFQ/Quote negotiation rules.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from marketplace.models import RfqStatus, QuoteStatus
from marketplace.services.rfq_lifecycle import (
    validate_moq, validate_price, calculate_expiry, is_expired,
    can_transition_rfq, can_transition_quote, is_terminal_rfq_status,
    effective_rfq_status, is_quotable,
    AcceptQuote, RejectQuote, CounterQuote, decision_target_status, parse_quote_decision
)

NOW = datetime(2026, 6, 15, 12, 0, 0)


class TestPredicates:
    """Tests for MOQ, price and expiry predicates."""

    @pytest.mark.parametrize('quantity,moq,expected', [
        (10, 10, True),
        (11, 10, True),
        (9, 10, False),
        (Decimal('10.5'), 10, True),
    ])
    def test_validate_moq(self, quantity, moq, expected):
        assert validate_moq(quantity, moq) is expected

    @pytest.mark.parametrize('price,expected', [
        (Decimal('0.01'), True),
        ('42.50', True),
        (0, False),
        (-5, False),
        (None, False),
        ('abc', False),
        ('NaN', False),
        ('Infinity', False),
        ('-Infinity', False),
        (Decimal('NaN'), False),
    ])
    def test_validate_price(self, price, expected):
        assert validate_price(price) is expected

    def test_calculate_expiry_default_30_days(self):
        assert calculate_expiry(now=NOW) == NOW + timedelta(days=30)
        assert calculate_expiry(7, now=NOW) == NOW + timedelta(days=7)

    def test_fresh_expiry_not_expired(self):
        assert is_expired(calculate_expiry(30)) is False

    def test_past_date_expired(self):
        assert is_expired(NOW - timedelta(seconds=1), now=NOW) is True
        assert is_expired(date(2026, 6, 14), now=NOW) is True

    def test_textual_dates(self):
        assert is_expired('2026-06-14T23:00:00', now=NOW) is True
        assert is_expired('2026-06-16', now=NOW) is False
        # Whole day stays valid
        assert is_expired('2026-06-15', now=NOW) is False

    def test_aware_datetime(self):
        past = (NOW - timedelta(days=2)).astimezone(timezone.utc)
        assert is_expired(past, now=NOW) is True


class TestTransitions:
    """Tests for the RFQ and quote state machines."""

    def test_rfq_happy_path(self):
        assert can_transition_rfq(RfqStatus.PENDING, RfqStatus.QUOTED)
        assert can_transition_rfq(RfqStatus.QUOTED, RfqStatus.ACCEPTED)
        assert can_transition_rfq(RfqStatus.ACCEPTED, RfqStatus.CONVERTED)

    def test_rfq_reject_only_after_quote(self):
        assert can_transition_rfq('quoted', 'rejected')
        assert not can_transition_rfq('pending', 'rejected')

    def test_rfq_expiry_from_non_terminal_states(self):
        assert can_transition_rfq(RfqStatus.PENDING, RfqStatus.EXPIRED)
        assert can_transition_rfq(RfqStatus.QUOTED, RfqStatus.EXPIRED)
        assert can_transition_rfq(RfqStatus.ACCEPTED, RfqStatus.EXPIRED)
        assert not can_transition_rfq(RfqStatus.CONVERTED, RfqStatus.EXPIRED)

    @pytest.mark.parametrize('status', [RfqStatus.REJECTED, RfqStatus.EXPIRED, RfqStatus.CONVERTED])
    def test_terminal_rfq_states(self, status):
        assert is_terminal_rfq_status(status)
        assert not any(can_transition_rfq(status, target) for target in RfqStatus)

    def test_quote_transitions(self):
        assert can_transition_quote(QuoteStatus.PENDING, QuoteStatus.COUNTERED)
        assert can_transition_quote(QuoteStatus.COUNTERED, QuoteStatus.ACCEPTED)
        assert not can_transition_quote(QuoteStatus.ACCEPTED, QuoteStatus.REJECTED)
        assert not can_transition_quote(QuoteStatus.REJECTED, QuoteStatus.ACCEPTED)

    def test_effective_status_applies_expiry(self):
        past = NOW - timedelta(days=1)
        assert effective_rfq_status(RfqStatus.PENDING, past, now=NOW) == RfqStatus.EXPIRED
        assert effective_rfq_status(RfqStatus.ACCEPTED, past, now=NOW) == RfqStatus.EXPIRED
        assert effective_rfq_status(RfqStatus.CONVERTED, past, now=NOW) == RfqStatus.CONVERTED
        assert effective_rfq_status(RfqStatus.QUOTED, None, now=NOW) == RfqStatus.QUOTED

    def test_is_quotable(self):
        future = NOW + timedelta(days=1)
        assert is_quotable(RfqStatus.PENDING, future, now=NOW)
        assert is_quotable(RfqStatus.QUOTED, future, now=NOW)
        assert not is_quotable(RfqStatus.PENDING, NOW - timedelta(days=1), now=NOW)
        assert not is_quotable(RfqStatus.ACCEPTED, future, now=NOW)


class TestQuoteDecisions:
    """Tests for parsing buyer decisions."""

    def test_parse_accept(self):
        decision = parse_quote_decision({'status': 'accepted', 'agreed_quantity': '250'})
        assert decision == AcceptQuote(agreed_quantity=250)
        assert decision_target_status(decision) == QuoteStatus.ACCEPTED

    def test_parse_reject(self):
        decision = parse_quote_decision({'status': 'REJECTED', 'reason': 'Too expensive'})
        assert decision == RejectQuote(reason='Too expensive')

    def test_parse_counter(self):
        decision = parse_quote_decision({'status': 'countered', 'counter_price': '42.50', 'counter_note': 'Bulk'})

        assert isinstance(decision, CounterQuote)
        assert decision.counter_price == Decimal('42.50')
        assert decision.note == 'Bulk'
        assert decision_target_status(decision) == QuoteStatus.COUNTERED

    def test_counter_requires_positive_price(self):
        with pytest.raises(ValueError):
            parse_quote_decision({'status': 'countered', 'counter_price': '0'})
        with pytest.raises(ValueError):
            parse_quote_decision({'status': 'countered', 'counter_price': 'NaN'})
        with pytest.raises(ValueError):
            parse_quote_decision({'status': 'countered'})

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            parse_quote_decision({'status': 'pending'})
        with pytest.raises(ValueError):
            parse_quote_decision({})
