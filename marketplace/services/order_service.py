"""Order service - checkout, order numbering and buyer order actions."""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from marketplace.models import (
    Product, Rfq, RfqStatus, Order, OrderItem, OrderStatus, CANCELLABLE_STATUSES
)
from marketplace.exceptions import (
    BusinessLogicError, NotFoundError, UnauthorizedError, InvalidTransitionError, InsufficientStockError
)
from marketplace.services.cart_pricing import (
    CartLine, DeliveryFeePolicy, calculate_cart_totals, validate_cart
)
from marketplace.services.cart_service import delete_cart_rows, get_cart_lines
from marketplace.services.coupon_service import check_coupon_code, redeem_coupon
from marketplace.services.rfq_lifecycle import can_transition_rfq, effective_rfq_status
from marketplace.services.notification_service import notify
from marketplace.utils.formatters import Number, quantize_money

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = 'Cancelled by buyer'


def generate_order_number(order_id: int, year: Optional[int] = None) -> str:
    """Human-readable order number, e.g. BO-2026-00042."""
    year = year or datetime.now().year
    return f"BO-{year}-{str(order_id).zfill(5)}"


def can_cancel_order(status: Union[OrderStatus, str]) -> bool:
    value = status.value if isinstance(status, OrderStatus) else status
    return value in [s.value for s in CANCELLABLE_STATUSES]


# ============================================================================
# Buyer actions on an order
# ============================================================================

@dataclass(frozen=True)
class CancelOrder:
    reason: Optional[str] = None


@dataclass(frozen=True)
class UpdateOrderStatus:
    status: OrderStatus


OrderAction = Union[CancelOrder, UpdateOrderStatus]


def parse_order_action(data: dict) -> OrderAction:
    """
    Build an order action from a request payload.

    {'action': 'cancel', 'reason': '...'}
    {'action': 'update', 'status': 'delivered'}

    Raises:
        ValueError: unknown action, or an update without a known status.
    """
    action = (data.get('action') or '').strip().lower()

    if action == 'cancel':
        return CancelOrder(reason=data.get('reason'))
    if action == 'update':
        status = (data.get('status') or '').strip().lower()
        if not status:
            raise ValueError('Status is required for update action')
        try:
            target = OrderStatus(status)
        except ValueError:
            raise ValueError(f"Unknown order status '{status}'")
        if target == OrderStatus.CANCELLED:
            return CancelOrder(reason=data.get('reason'))
        return UpdateOrderStatus(status=target)

    raise ValueError(f"Unknown order action '{action}'")


# ============================================================================
# Stock
# ============================================================================

def _reserve_stock(session: Session, product_id: int, quantity: int) -> Product:
    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if not product:
        raise NotFoundError('Product not found.')
    if product.stock < quantity:
        raise InsufficientStockError(product.name, quantity, product.stock)

    product.stock -= quantity
    product.sold_count = (product.sold_count or 0) + quantity
    return product


def _restock(session: Session, order: Order) -> None:
    for item in order.items:
        product = session.query(Product).filter(Product.id == item.product_id).with_for_update().first()
        if not product:
            continue
        product.stock += item.quantity
        product.sold_count = max(0, (product.sold_count or 0) - item.quantity)


# ============================================================================
# Order creation
# ============================================================================

def create_order(
    session: Session,
    buyer_id: str,
    lines: List[CartLine],
    discount: Number,
    delivery_fee: Number,
    coupon_code: Optional[str] = None,
    delivery_location: Optional[str] = None,
    notes: Optional[str] = None,
    payment_method: Optional[str] = None
) -> Order:
    """
    Reserve stock and persist an order with its lines. The caller commits.

    Raises:
        InsufficientStockError: a line needs more units than are in stock.
    """
    if not lines:
        raise BusinessLogicError('Cannot place an order without items.')

    subtotal = sum((line.line_total for line in lines), Decimal('0'))
    discount = quantize_money(discount)
    delivery_fee = quantize_money(delivery_fee)

    order = Order(
        buyer_id=buyer_id,
        subtotal=quantize_money(subtotal),
        discount=discount,
        delivery_fee=delivery_fee,
        total_amount=quantize_money(max(Decimal('0'), subtotal - discount + delivery_fee)),
        status=OrderStatus.PLACED.value,
        coupon_code=coupon_code,
        delivery_location=delivery_location,
        notes=notes,
        payment_method=payment_method
    )
    session.add(order)
    session.flush()
    order.order_number = generate_order_number(order.id)

    for line in lines:
        _reserve_stock(session, line.product_id, line.quantity)
        order.items.append(OrderItem(
            product_id=line.product_id,
            supplier_id=line.supplier_id,
            rfq_id=line.rfq_id,
            quote_id=line.quote_id,
            quantity=line.quantity,
            unit_price=quantize_money(line.unit_price),
            line_total=quantize_money(line.line_total)
        ))

    session.flush()
    return order


def _mark_rfqs_converted(session: Session, lines: List[CartLine], now: Optional[datetime] = None) -> None:
    """Negotiated lines consume their RFQ; an RFQ that cannot convert blocks checkout."""
    rfq_ids = {line.rfq_id for line in lines if line.rfq_id}
    if not rfq_ids:
        return
    for rfq in session.query(Rfq).filter(Rfq.id.in_(rfq_ids)).with_for_update().all():
        current = effective_rfq_status(rfq.status, rfq.expires_at, now)
        if not can_transition_rfq(current, RfqStatus.CONVERTED):
            raise InvalidTransitionError('RFQ', current.value, RfqStatus.CONVERTED.value)
        rfq.status = RfqStatus.CONVERTED


def checkout_cart(
    session: Session,
    buyer_id: str,
    coupon_code: Optional[str] = None,
    delivery_location: Optional[str] = None,
    notes: Optional[str] = None,
    payment_method: Optional[str] = None,
    delivery_policy: Optional[DeliveryFeePolicy] = None,
    now: Optional[datetime] = None,
    currency_symbol: str = '৳'
) -> Order:
    """
    Turn the buyer's cart into an order.

    Runs as one transaction: validate cart and coupon, reserve stock,
    write the order, convert quoted RFQs, redeem the coupon, empty the cart.

    Raises:
        BusinessLogicError: empty cart, invalid coupon, or MOQ/stock problems
            (details under 'cart_errors' / 'item_errors').
        InsufficientStockError: stock ran out between validation and reservation.
        InvalidTransitionError: a negotiated line's RFQ was already converted or expired.
    """
    try:
        lines = get_cart_lines(session, buyer_id)
        if not lines:
            raise BusinessLogicError('Your cart is empty.')

        coupon = None
        terms = None
        if coupon_code:
            subtotal = sum((line.line_total for line in lines), Decimal('0'))
            check = check_coupon_code(
                session, coupon_code, subtotal, buyer_id=buyer_id, items=lines, now=now,
                currency_symbol=currency_symbol, lock=True
            )
            if not check.is_valid:
                raise BusinessLogicError(check.error, payload={'error_code': check.error_code})
            coupon = check.coupon
            terms = coupon.to_terms()

        validation = validate_cart(lines, terms, now, currency_symbol)
        if not validation.is_valid:
            raise BusinessLogicError('Your cart has problems that must be fixed before checkout.', payload={
                'cart_errors': validation.cart_errors,
                'item_errors': {v.item_id: v.errors for v in validation.item_validations if not v.is_valid},
            })

        totals = calculate_cart_totals(lines, coupon=terms, delivery_policy=delivery_policy, now=now)
        _mark_rfqs_converted(session, lines, now)

        order = create_order(
            session, buyer_id, lines,
            discount=totals.discount,
            delivery_fee=totals.delivery_fee,
            coupon_code=coupon.code if coupon else None,
            delivery_location=delivery_location,
            notes=notes,
            payment_method=payment_method
        )

        if coupon:
            redeem_coupon(session, coupon, buyer_id, order.id, totals.discount)

        delete_cart_rows(session, buyer_id)

        notified = set()
        for item in order.items:
            owner_id = item.product.supplier.owner_id if item.product.supplier else None
            if owner_id in notified:
                continue
            notified.add(owner_id)
            notify(
                session, owner_id,
                title='New order placed',
                message=f'Order {order.order_number} includes your products.',
                type='order_placed',
                link=f'/api/orders/{order.id}'
            )

        session.commit()
        logger.info(f"Checkout {order.order_number} for {buyer_id}: total={order.total_amount}")
        return order
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


# ============================================================================
# Queries and updates
# ============================================================================

def list_buyer_orders(session: Session, buyer_id: str, status: Optional[str] = None) -> List[Order]:
    query = session.query(Order).filter(Order.buyer_id == buyer_id)
    if status:
        query = query.filter(Order.status == OrderStatus(status).value)
    return query.order_by(Order.id.desc()).all()


def get_order_for_buyer(session: Session, order_id: int, buyer_id: str) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError('Order not found.')
    if order.buyer_id != buyer_id:
        raise UnauthorizedError('Unauthorized access to order.')
    return order


def apply_order_action(
    session: Session,
    order_id: int,
    buyer_id: str,
    action: OrderAction,
    now: Optional[datetime] = None
) -> Order:
    """
    Cancel an order (restocking its items) or move it to another status.

    Raises:
        InvalidTransitionError: order is past the cancellable stage, or already cancelled.
    """
    try:
        order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError('Order not found.')
        if order.buyer_id != buyer_id:
            raise UnauthorizedError('Unauthorized access to order.')

        if isinstance(action, CancelOrder):
            if not can_cancel_order(order.status):
                raise InvalidTransitionError('order', order.status, OrderStatus.CANCELLED.value)
            _restock(session, order)
            order.status = OrderStatus.CANCELLED.value
            order.cancellation_reason = (action.reason or '').strip() or DEFAULT_CANCEL_REASON
            order.cancelled_at = now or datetime.now()
        elif isinstance(action, UpdateOrderStatus):
            if order.status == OrderStatus.CANCELLED.value:
                raise InvalidTransitionError('order', order.status, action.status.value)
            order.status = action.status.value
        else:
            raise TypeError(f'Unknown order action: {action!r}')

        session.commit()
        logger.info(f"Order {order.order_number} -> {order.status} by {buyer_id}")
        return order
    except (BusinessLogicError, NotFoundError, UnauthorizedError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise
