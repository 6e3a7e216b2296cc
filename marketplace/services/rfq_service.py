"""RFQ service - buyer requests, supplier quotes and negotiation."""
import logging
from datetime import datetime, time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.models import (
    Product, Rfq, RfqStatus, Quote, QuoteStatus, QuoteCounterOffer, Order
)
from marketplace.exceptions import (
    BusinessLogicError, NotFoundError, UnauthorizedError, InvalidTransitionError, InsufficientStockError
)
from marketplace.services.rfq_lifecycle import (
    AcceptQuote, RejectQuote, CounterQuote, QuoteDecision,
    calculate_expiry, can_transition_quote, can_transition_rfq, decision_target_status,
    effective_rfq_status, is_expired, is_quotable, validate_moq, validate_price
)
from marketplace.services.cart_pricing import CartLine
from marketplace.services.notification_service import notify
from marketplace.services.order_service import create_order
from marketplace.utils.dates import DateLike, parse_date_like
from marketplace.utils.formatters import Number, format_money, quantize_money, to_decimal

logger = logging.getLogger(__name__)

MIN_LOCATION_LENGTH = 5


def _supplier_owner(rfq: Rfq) -> Optional[str]:
    return rfq.supplier.owner_id if rfq.supplier else None


def _get_rfq(session: Session, rfq_id: int, lock: bool = False) -> Rfq:
    query = session.query(Rfq).filter(Rfq.id == rfq_id)
    if lock:
        query = query.with_for_update()
    rfq = query.first()
    if not rfq:
        raise NotFoundError('RFQ not found.')
    return rfq


def _parse_validity(value: DateLike) -> datetime:
    """A date-only validity lasts until the end of that day."""
    try:
        parsed = parse_date_like(value)
    except (TypeError, ValueError):
        raise BusinessLogicError('Invalid quote validity date.')
    if isinstance(parsed, datetime):
        return parsed
    return datetime.combine(parsed, time(23, 59, 59))


# ============================================================================
# Buyer: requests
# ============================================================================

def submit_rfq(
    session: Session,
    buyer_id: str,
    product_id: int,
    quantity,
    delivery_location: str,
    target_price: Optional[Number] = None,
    notes: Optional[str] = None,
    attachments: Optional[List[str]] = None,
    valid_days: int = 30,
    now: Optional[datetime] = None
) -> Rfq:
    """
    Create an RFQ addressed to the product's supplier.

    Raises:
        NotFoundError: unknown or inactive product.
        BusinessLogicError: quantity below MOQ, bad target price or location.
    """
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise BusinessLogicError('Quantity must be a whole number.')

    location = (delivery_location or '').strip()
    if len(location) < MIN_LOCATION_LENGTH:
        raise BusinessLogicError(f'Delivery location must be at least {MIN_LOCATION_LENGTH} characters.')
    if target_price not in (None, '') and not validate_price(target_price):
        raise BusinessLogicError('Target price must be greater than 0.')

    try:
        product = session.query(Product).filter(Product.id == product_id).first()
        if not product or not product.active:
            raise NotFoundError('Product not found.')
        if not product.supplier_id:
            raise BusinessLogicError('This product has no supplier to quote it.')
        if qty <= 0 or not validate_moq(qty, product.moq):
            raise BusinessLogicError(
                f'Minimum order quantity for {product.name} is {product.moq} units.',
                payload={'moq': product.moq}
            )

        rfq = Rfq(
            buyer_id=buyer_id,
            supplier_id=product.supplier_id,
            product_id=product.id,
            quantity=qty,
            target_price=to_decimal(target_price) if target_price not in (None, '') else None,
            delivery_location=location,
            notes=(notes or '').strip() or None,
            attachments=attachments or [],
            status=RfqStatus.PENDING,
            expires_at=calculate_expiry(valid_days, now)
        )
        session.add(rfq)
        session.flush()

        notify(
            session, _supplier_owner(rfq),
            title='New RFQ received',
            message=f'A buyer requested a quote for {qty} x {product.name}.',
            type='rfq_received',
            link=f'/api/rfq/{rfq.id}'
        )
        session.commit()
        logger.info(f"RFQ {rfq.id} submitted by {buyer_id} for product {product.id} (qty={qty})")
        return rfq
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def list_buyer_rfqs(session: Session, buyer_id: str, status: Optional[str] = None) -> List[Rfq]:
    query = session.query(Rfq).filter(Rfq.buyer_id == buyer_id)
    if status:
        query = query.filter(Rfq.status == RfqStatus(status))
    return query.order_by(Rfq.id.desc()).all()


def list_supplier_rfqs(session: Session, supplier_id: int, status: Optional[str] = None) -> List[Rfq]:
    query = session.query(Rfq).filter(Rfq.supplier_id == supplier_id)
    if status:
        query = query.filter(Rfq.status == RfqStatus(status))
    return query.order_by(Rfq.id.desc()).all()


def get_rfq_for_buyer(session: Session, rfq_id: int, buyer_id: str) -> Rfq:
    rfq = _get_rfq(session, rfq_id)
    if rfq.buyer_id != buyer_id:
        raise UnauthorizedError('Unauthorized access to RFQ.')
    return rfq


def get_rfq_for_supplier(session: Session, rfq_id: int, supplier_id: int) -> Rfq:
    rfq = _get_rfq(session, rfq_id)
    if rfq.supplier_id != supplier_id:
        raise UnauthorizedError('Unauthorized access to RFQ.')
    return rfq


# ============================================================================
# Supplier: quotes
# ============================================================================

def submit_quote(
    session: Session,
    supplier_id: int,
    rfq_id: int,
    unit_price: Number,
    total_price: Optional[Number] = None,
    validity_period: Optional[DateLike] = None,
    valid_days: int = 7,
    terms: Optional[str] = None,
    delivery_time: Optional[str] = None,
    deposit_percentage: int = 0,
    now: Optional[datetime] = None
) -> Quote:
    """
    Answer an RFQ with a price. The RFQ moves to 'quoted'.

    Raises:
        UnauthorizedError: the RFQ is addressed to another supplier.
        InvalidTransitionError: the RFQ is no longer open for quotes.
    """
    if not validate_price(unit_price):
        raise BusinessLogicError('Unit price must be greater than 0.')
    if total_price not in (None, '') and not validate_price(total_price):
        raise BusinessLogicError('Total price must be greater than 0.')
    try:
        deposit = int(deposit_percentage or 0)
    except (TypeError, ValueError):
        raise BusinessLogicError('Deposit percentage must be a whole number.')
    if not 0 <= deposit <= 100:
        raise BusinessLogicError('Deposit percentage must be between 0 and 100.')

    try:
        rfq = _get_rfq(session, rfq_id, lock=True)
        if rfq.supplier_id != supplier_id:
            raise UnauthorizedError('Unauthorized access to RFQ.')

        if not is_quotable(rfq.status, rfq.expires_at, now):
            current = effective_rfq_status(rfq.status, rfq.expires_at, now)
            if current == RfqStatus.EXPIRED:
                raise BusinessLogicError('This RFQ has expired.')
            raise InvalidTransitionError('RFQ', current.value, RfqStatus.QUOTED.value)

        price = quantize_money(unit_price)
        if validity_period:
            valid_until = _parse_validity(validity_period)
            if is_expired(valid_until, now):
                raise BusinessLogicError('Quote validity must be in the future.')
        else:
            valid_until = calculate_expiry(valid_days, now)

        quote = Quote(
            rfq_id=rfq.id,
            supplier_id=supplier_id,
            unit_price=price,
            total_price=(
                quantize_money(total_price) if total_price not in (None, '')
                else quantize_money(price * rfq.quantity)
            ),
            validity_period=valid_until,
            terms=(terms or '').strip() or None,
            delivery_time=delivery_time,
            deposit_percentage=deposit,
            status=QuoteStatus.PENDING
        )
        session.add(quote)
        rfq.status = RfqStatus.QUOTED
        session.flush()

        notify(
            session, rfq.buyer_id,
            title='New quote received',
            message=f'You received a quote of {format_money(price)} per unit for {rfq.product.name}.',
            type='quote_received',
            link=f'/api/rfq/{rfq.id}'
        )
        session.commit()
        logger.info(f"Quote {quote.id} submitted for RFQ {rfq.id} by supplier {supplier_id}")
        return quote
    except (BusinessLogicError, NotFoundError, UnauthorizedError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


# ============================================================================
# Buyer: decisions
# ============================================================================

def _accept(session: Session, quote: Quote, rfq: Rfq, decision: AcceptQuote, now: Optional[datetime]) -> None:
    if is_expired(quote.validity_period, now):
        raise BusinessLogicError('This quote has expired.')

    quantity = decision.agreed_quantity if decision.agreed_quantity is not None else rfq.quantity
    if quantity <= 0:
        raise BusinessLogicError('Agreed quantity must be greater than 0.')
    if not validate_moq(quantity, rfq.product.moq):
        raise BusinessLogicError(f'Minimum order quantity for {rfq.product.name} is {rfq.product.moq} units.')

    quote.status = QuoteStatus.ACCEPTED
    quote.agreed_quantity = quantity
    rfq.status = RfqStatus.ACCEPTED

    # Only one quote per RFQ can win
    for other in rfq.quotes:
        if other.id != quote.id and other.status in (QuoteStatus.PENDING, QuoteStatus.COUNTERED):
            other.status = QuoteStatus.REJECTED

    notify(
        session, _supplier_owner(rfq),
        title='Quote accepted',
        message=f'Your quote for {rfq.product.name} was accepted ({quantity} units).',
        type='quote_accepted',
        link=f'/api/rfq/{rfq.id}'
    )


def _reject(session: Session, quote: Quote, rfq: Rfq, decision: RejectQuote) -> None:
    quote.status = QuoteStatus.REJECTED
    rfq.status = RfqStatus.REJECTED
    reason = f' Reason: {decision.reason}' if decision.reason else ''
    notify(
        session, _supplier_owner(rfq),
        title='Quote rejected',
        message=f'Your quote for {rfq.product.name} was rejected.{reason}',
        type='quote_rejected',
        link=f'/api/rfq/{rfq.id}'
    )


def _counter(session: Session, quote: Quote, rfq: Rfq, decision: CounterQuote) -> None:
    if not validate_price(decision.counter_price):
        raise BusinessLogicError('Counter price must be greater than 0.')

    counter_price = quantize_money(decision.counter_price)
    session.add(QuoteCounterOffer(
        quote_id=quote.id,
        buyer_id=rfq.buyer_id,
        counter_price=counter_price,
        previous_price=quote.unit_price,
        note=decision.note
    ))
    quote.status = QuoteStatus.COUNTERED
    quote.counter_price = counter_price
    quote.counter_note = decision.note

    notify(
        session, _supplier_owner(rfq),
        title='Counter offer received',
        message=f'The buyer proposed {format_money(counter_price)} per unit for {rfq.product.name}.',
        type='quote_countered',
        link=f'/api/rfq/{rfq.id}'
    )


def decide_quote(
    session: Session,
    quote_id: int,
    buyer_id: str,
    decision: QuoteDecision,
    now: Optional[datetime] = None
) -> Quote:
    """
    Apply a buyer decision (accept, reject or counter) to a quote.

    Accept and reject also settle the RFQ; a counter keeps it open.

    Raises:
        InvalidTransitionError: quote or RFQ cannot take the decision.
        BusinessLogicError: expired quote/RFQ or invalid counter price.
    """
    target = decision_target_status(decision)

    try:
        quote = session.query(Quote).filter(Quote.id == quote_id).with_for_update().first()
        if not quote:
            raise NotFoundError('Quote not found.')
        rfq = quote.rfq
        if rfq.buyer_id != buyer_id:
            raise UnauthorizedError('Unauthorized access to quote.')

        if not can_transition_quote(quote.status, target):
            raise InvalidTransitionError('quote', quote.status.value, target.value)

        rfq_status = effective_rfq_status(rfq.status, rfq.expires_at, now)
        if rfq_status == RfqStatus.EXPIRED:
            raise BusinessLogicError('This RFQ has expired.')
        rfq_target = {
            QuoteStatus.ACCEPTED: RfqStatus.ACCEPTED,
            QuoteStatus.REJECTED: RfqStatus.REJECTED,
            QuoteStatus.COUNTERED: RfqStatus.QUOTED,
        }[target]
        if not can_transition_rfq(rfq_status, rfq_target):
            raise InvalidTransitionError('RFQ', rfq_status.value, rfq_target.value)

        if isinstance(decision, AcceptQuote):
            _accept(session, quote, rfq, decision, now)
        elif isinstance(decision, RejectQuote):
            _reject(session, quote, rfq, decision)
        elif isinstance(decision, CounterQuote):
            _counter(session, quote, rfq, decision)

        session.commit()
        logger.info(f"Quote {quote.id} {target.value} by buyer {buyer_id}")
        return quote
    except (BusinessLogicError, NotFoundError, UnauthorizedError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


# ============================================================================
# Conversion and expiry
# ============================================================================

def convert_rfq_to_order(
    session: Session,
    rfq_id: int,
    buyer_id: str,
    delivery_location: Optional[str] = None,
    notes: Optional[str] = None,
    payment_method: Optional[str] = None,
    now: Optional[datetime] = None
) -> Order:
    """
    Place an order for an accepted RFQ at the negotiated price.

    Quantity is the agreed quantity when the buyer set one, else the RFQ quantity.
    """
    try:
        rfq = _get_rfq(session, rfq_id, lock=True)
        if rfq.buyer_id != buyer_id:
            raise UnauthorizedError('Unauthorized access to RFQ.')
        rfq_status = effective_rfq_status(rfq.status, rfq.expires_at, now)
        if rfq_status == RfqStatus.EXPIRED:
            raise BusinessLogicError('This RFQ has expired.')
        if not can_transition_rfq(rfq_status, RfqStatus.CONVERTED):
            raise InvalidTransitionError('RFQ', rfq_status.value, RfqStatus.CONVERTED.value)

        quote = rfq.accepted_quote
        if not quote:
            raise BusinessLogicError('This RFQ has no accepted quote.')

        product = rfq.product
        line = CartLine(
            product_id=product.id,
            supplier_id=rfq.supplier_id,
            product_name=product.name,
            quantity=quote.agreed_quantity or rfq.quantity,
            unit_price=quote.unit_price,
            moq=product.moq,
            stock=product.stock,
            rfq_id=rfq.id,
            quote_id=quote.id,
            is_price_locked=True
        )
        order = create_order(
            session, buyer_id, [line],
            discount=Decimal('0'),
            delivery_fee=Decimal('0'),
            delivery_location=delivery_location or rfq.delivery_location,
            notes=notes,
            payment_method=payment_method
        )
        rfq.status = RfqStatus.CONVERTED

        notify(
            session, _supplier_owner(rfq),
            title='New order placed',
            message=f'Order {order.order_number} was placed from RFQ #{rfq.id}.',
            type='order_placed',
            link=f'/api/orders/{order.id}'
        )
        session.commit()
        logger.info(f"RFQ {rfq.id} converted to order {order.order_number}")
        return order
    except (BusinessLogicError, NotFoundError, UnauthorizedError, InsufficientStockError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def expire_stale_rfqs(session: Session, now: Optional[datetime] = None) -> int:
    """Persist EXPIRED for open RFQs whose expiry has passed."""
    now = now or datetime.now()
    open_statuses = [s for s in RfqStatus if can_transition_rfq(s, RfqStatus.EXPIRED)]

    try:
        stale = session.query(Rfq).filter(
            Rfq.status.in_(open_statuses),
            Rfq.expires_at.isnot(None),
            Rfq.expires_at < now
        ).all()

        for rfq in stale:
            rfq.status = RfqStatus.EXPIRED
            notify(
                session, rfq.buyer_id,
                title='RFQ expired',
                message=f'Your RFQ #{rfq.id} for {rfq.product.name} expired.',
                type='rfq_expired',
                link=f'/api/rfq/{rfq.id}'
            )

        session.commit()
        if stale:
            logger.info(f"Expired {len(stale)} RFQs")
        return len(stale)
    except Exception:
        session.rollback()
        raise
