"""
RFQ / Quote negotiation rules.

Predicates and derivations used when RFQs and quotes are created or change
status. Status writes happen in rfq_service; this module only answers
"is this allowed?" and never raises for business conditions.

RFQ:   pending -> quoted -> accepted -> converted
                  quoted -> rejected
       any non-terminal -> expired (expires_at passed)
Quote: pending -> accepted | rejected | countered
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from marketplace.models.rfq import RfqStatus
from marketplace.models.quote import QuoteStatus
from marketplace.utils.dates import DateLike, has_passed
from marketplace.utils.formatters import Number, to_decimal

DEFAULT_EXPIRY_DAYS = 30

RFQ_TRANSITIONS = {
    RfqStatus.PENDING: {RfqStatus.QUOTED, RfqStatus.EXPIRED},
    RfqStatus.QUOTED: {RfqStatus.QUOTED, RfqStatus.ACCEPTED, RfqStatus.REJECTED, RfqStatus.EXPIRED},
    # An accepted deal that is never ordered still lapses at expires_at
    RfqStatus.ACCEPTED: {RfqStatus.CONVERTED, RfqStatus.EXPIRED},
    RfqStatus.REJECTED: set(),
    RfqStatus.EXPIRED: set(),
    RfqStatus.CONVERTED: set(),
}

QUOTE_TRANSITIONS = {
    QuoteStatus.PENDING: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.COUNTERED},
    # Supplier may still be accepted or turned down after a counter
    QuoteStatus.COUNTERED: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.COUNTERED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
}

# States a supplier may still quote against
QUOTABLE_RFQ_STATES = {RfqStatus.PENDING, RfqStatus.QUOTED}


def validate_moq(quantity: Number, moq: Number) -> bool:
    """Requested quantity meets the product's Minimum Order Quantity."""
    try:
        return to_decimal(quantity) >= to_decimal(moq)
    except ValueError:
        return False


def validate_price(price: Optional[Number]) -> bool:
    """Price must be strictly positive."""
    if price is None:
        return False
    try:
        amount = to_decimal(price)
    except ValueError:
        return False
    return amount.is_finite() and amount > 0


def calculate_expiry(days: int = DEFAULT_EXPIRY_DAYS, now: Optional[datetime] = None) -> datetime:
    """Expiry moment `days` from now."""
    return (now or datetime.now()) + timedelta(days=days)


def is_expired(expiry_date: DateLike, now: Optional[datetime] = None) -> bool:
    """Whether an RFQ or quote expiry has passed. Accepts datetime, date or ISO text."""
    return has_passed(expiry_date, now)


def _rfq_status(value: Union[RfqStatus, str]) -> RfqStatus:
    return value if isinstance(value, RfqStatus) else RfqStatus(value)


def _quote_status(value: Union[QuoteStatus, str]) -> QuoteStatus:
    return value if isinstance(value, QuoteStatus) else QuoteStatus(value)


def is_terminal_rfq_status(status: Union[RfqStatus, str]) -> bool:
    return not RFQ_TRANSITIONS[_rfq_status(status)]


def can_transition_rfq(current: Union[RfqStatus, str], target: Union[RfqStatus, str]) -> bool:
    return _rfq_status(target) in RFQ_TRANSITIONS[_rfq_status(current)]


def can_transition_quote(current: Union[QuoteStatus, str], target: Union[QuoteStatus, str]) -> bool:
    return _quote_status(target) in QUOTE_TRANSITIONS[_quote_status(current)]


def effective_rfq_status(
    status: Union[RfqStatus, str],
    expires_at: Optional[DateLike],
    now: Optional[datetime] = None
) -> RfqStatus:
    """Stored status, or EXPIRED for a lapsed RFQ that has not been swept yet."""
    status = _rfq_status(status)
    if (
        expires_at
        and can_transition_rfq(status, RfqStatus.EXPIRED)
        and is_expired(expires_at, now)
    ):
        return RfqStatus.EXPIRED
    return status


def is_quotable(
    status: Union[RfqStatus, str],
    expires_at: Optional[DateLike],
    now: Optional[datetime] = None
) -> bool:
    """An RFQ accepts new quotes while pending/quoted and not expired."""
    return effective_rfq_status(status, expires_at, now) in QUOTABLE_RFQ_STATES


# ============================================================================
# Buyer decisions on a quote
# ============================================================================

@dataclass(frozen=True)
class AcceptQuote:
    agreed_quantity: Optional[int] = None


@dataclass(frozen=True)
class RejectQuote:
    reason: Optional[str] = None


@dataclass(frozen=True)
class CounterQuote:
    counter_price: Decimal
    note: Optional[str] = None


QuoteDecision = Union[AcceptQuote, RejectQuote, CounterQuote]


def decision_target_status(decision: QuoteDecision) -> QuoteStatus:
    """Quote status a buyer decision leads to."""
    if isinstance(decision, AcceptQuote):
        return QuoteStatus.ACCEPTED
    if isinstance(decision, RejectQuote):
        return QuoteStatus.REJECTED
    if isinstance(decision, CounterQuote):
        return QuoteStatus.COUNTERED
    raise TypeError(f'Unknown quote decision: {decision!r}')


def parse_quote_decision(data: dict) -> QuoteDecision:
    """
    Build a decision from a request payload.

    {'status': 'accepted', 'agreed_quantity': 500}
    {'status': 'rejected', 'reason': '...'}
    {'status': 'countered', 'counter_price': '42.50', 'counter_note': '...'}

    Raises:
        ValueError: unknown status or a counter without a positive price.
    """
    status = (data.get('status') or '').strip().lower()

    if status == QuoteStatus.ACCEPTED.value:
        quantity = data.get('agreed_quantity')
        return AcceptQuote(agreed_quantity=int(quantity) if quantity is not None else None)
    if status == QuoteStatus.REJECTED.value:
        return RejectQuote(reason=data.get('reason'))
    if status == QuoteStatus.COUNTERED.value:
        price = data.get('counter_price')
        if not validate_price(price):
            raise ValueError('Counter price must be greater than 0')
        return CounterQuote(counter_price=to_decimal(price), note=data.get('counter_note'))

    raise ValueError(f"Unknown quote status '{status}'")
