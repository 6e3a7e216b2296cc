"""Cart service - persistent buyer cart operations."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from marketplace.models import CartItem, Product, Quote, QuoteStatus, RfqStatus, Supplier
from marketplace.exceptions import (
    BusinessLogicError, NotFoundError, InsufficientStockError, UnauthorizedError, InvalidTransitionError
)
from marketplace.services.cart_pricing import (
    CartLine, DeliveryFeePolicy, calculate_cart_totals, calculate_savings, flat_delivery_fee,
    merge_guest_cart, per_supplier_delivery_fee, validate_cart
)
from marketplace.services.coupon_service import check_coupon_code
from marketplace.utils.formatters import to_decimal

logger = logging.getLogger(__name__)


def delivery_policy_from_config(config) -> DeliveryFeePolicy:
    """Delivery fee policy configured for the storefront (free by default)."""
    base_fee = to_decimal(config.get('DELIVERY_FEE_PER_SUPPLIER', 0))
    if base_fee <= 0:
        return flat_delivery_fee(0)
    return per_supplier_delivery_fee(base_fee, config.get('FREE_DELIVERY_THRESHOLD', 0))


def supplier_name_resolver(session: Session):
    """Resolve supplier display names, one query per supplier."""
    cache = {}

    def resolve(supplier_id: int) -> Optional[str]:
        if supplier_id not in cache:
            supplier = session.query(Supplier).filter(Supplier.id == supplier_id).first()
            cache[supplier_id] = supplier.name if supplier else None
        return cache[supplier_id]
    return resolve


def _parse_quantity(quantity) -> int:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise BusinessLogicError('Quantity must be a whole number.')
    if qty <= 0:
        raise BusinessLogicError('Quantity must be greater than 0.')
    return qty


def _get_item(session: Session, buyer_id: str, item_id: int) -> CartItem:
    item = session.query(CartItem).filter(
        CartItem.id == item_id,
        CartItem.buyer_id == buyer_id
    ).first()
    if not item:
        raise NotFoundError('Cart item not found.')
    return item


def get_cart_items(session: Session, buyer_id: str) -> List[CartItem]:
    return session.query(CartItem).filter(
        CartItem.buyer_id == buyer_id
    ).order_by(CartItem.id).all()


def get_cart_lines(session: Session, buyer_id: str) -> List[CartLine]:
    """Cart rows as calculator lines, in insertion order."""
    return [item.to_line() for item in get_cart_items(session, buyer_id)]


def _accepted_quote_for(session: Session, quote_id: int, buyer_id: str, product_id: int) -> Quote:
    quote = session.query(Quote).filter(Quote.id == quote_id).first()
    if not quote:
        raise NotFoundError('Quote not found.')
    if quote.rfq.buyer_id != buyer_id:
        raise UnauthorizedError('Unauthorized access to quote.')
    if quote.status != QuoteStatus.ACCEPTED:
        raise BusinessLogicError('Only accepted quotes can be added to the cart.')
    rfq_status = quote.rfq.effective_status
    if rfq_status == RfqStatus.EXPIRED:
        raise BusinessLogicError('This RFQ has expired.')
    if rfq_status != RfqStatus.ACCEPTED:
        # The negotiated price is good for one order only
        raise InvalidTransitionError('RFQ', rfq_status.value, RfqStatus.CONVERTED.value)
    if quote.rfq.product_id != product_id:
        raise BusinessLogicError('Quote does not match this product.')
    return quote


def add_to_cart(session: Session, buyer_id: str, product_id: int, quantity, quote_id: Optional[int] = None) -> CartItem:
    """
    Add a product to the buyer's cart or increase the existing line.

    With quote_id the line carries the negotiated price of an accepted quote
    and is kept apart from standard lines for the same product.
    """
    qty = _parse_quantity(quantity)

    try:
        product = session.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError('Product not found.')
        if not product.active:
            raise BusinessLogicError(f'Product "{product.name}" is not available.')

        quote = _accepted_quote_for(session, quote_id, buyer_id, product.id) if quote_id else None
        rfq_id = quote.rfq_id if quote else None

        item = session.query(CartItem).filter(
            CartItem.buyer_id == buyer_id,
            CartItem.product_id == product.id,
            CartItem.rfq_id == rfq_id if rfq_id else CartItem.rfq_id.is_(None)
        ).first()

        new_qty = qty + (item.quantity if item else 0)
        if new_qty > product.stock:
            raise InsufficientStockError(product.name, new_qty, product.stock)

        if item:
            item.quantity = new_qty
            item.updated_at = datetime.now()
        else:
            item = CartItem(
                buyer_id=buyer_id,
                product_id=product.id,
                quantity=new_qty,
                rfq_id=rfq_id,
                quote_id=quote.id if quote else None,
                locked_unit_price=quote.unit_price if quote else None
            )
            session.add(item)

        session.commit()
        logger.info(f"Cart {buyer_id}: product {product.id} qty={new_qty}")
        return item
    except (BusinessLogicError, NotFoundError, UnauthorizedError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def update_cart_item(session: Session, buyer_id: str, item_id: int, quantity) -> CartItem:
    """Set a line's quantity. Stock is enforced here; MOQ is reported by the summary."""
    qty = _parse_quantity(quantity)

    try:
        item = _get_item(session, buyer_id, item_id)
        if qty > item.product.stock:
            raise InsufficientStockError(item.product.name, qty, item.product.stock)

        item.quantity = qty
        item.updated_at = datetime.now()
        session.commit()
        return item
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def remove_cart_item(session: Session, buyer_id: str, item_id: int) -> None:
    try:
        item = _get_item(session, buyer_id, item_id)
        session.delete(item)
        session.commit()
    except NotFoundError as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def merge_guest_items(session: Session, buyer_id: str, guest_items: List[Dict[str, Any]]) -> int:
    """
    Fold an anonymous cart ({product_id, quantity, quote_id?} entries) into the buyer's cart.

    Unknown or inactive products are skipped. Merged quantities are capped at
    stock. Returns the number of guest lines taken over.
    """
    try:
        rows = {}
        for row in get_cart_items(session, buyer_id):
            rows[row.to_line().item_id] = row
        user_lines = [row.to_line() for row in rows.values()]

        guest_lines = []
        for entry in guest_items:
            product = session.query(Product).filter(Product.id == entry.get('product_id')).first()
            if not product or not product.active:
                logger.warning(f"Guest cart for {buyer_id}: skipping unavailable product {entry.get('product_id')}")
                continue
            qty = _parse_quantity(entry.get('quantity', 1))
            quote = _accepted_quote_for(session, entry['quote_id'], buyer_id, product.id) if entry.get('quote_id') else None
            guest_lines.append(CartLine(
                product_id=product.id,
                supplier_id=product.supplier_id,
                product_name=product.name,
                quantity=min(qty, product.stock),
                unit_price=quote.unit_price if quote else product.unit_price,
                moq=product.moq,
                stock=product.stock,
                rfq_id=quote.rfq_id if quote else None,
                quote_id=quote.id if quote else None,
                is_price_locked=quote is not None
            ))

        for line in merge_guest_cart(guest_lines, user_lines):
            row = rows.get(line.item_id)
            if row:
                if row.quantity != line.quantity:
                    row.quantity = line.quantity
                    row.updated_at = datetime.now()
            elif line.quantity > 0:
                session.add(CartItem(
                    buyer_id=buyer_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    rfq_id=line.rfq_id,
                    quote_id=line.quote_id,
                    locked_unit_price=line.unit_price if line.is_price_locked else None
                ))

        session.commit()
        logger.info(f"Merged {len(guest_lines)} guest cart lines into cart {buyer_id}")
        return len(guest_lines)
    except (BusinessLogicError, NotFoundError, UnauthorizedError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def delete_cart_rows(session: Session, buyer_id: str) -> int:
    """Delete every line of a cart inside the caller's transaction."""
    return session.query(CartItem).filter(CartItem.buyer_id == buyer_id).delete()


def clear_cart(session: Session, buyer_id: str) -> int:
    try:
        deleted = delete_cart_rows(session, buyer_id)
        session.commit()
        return deleted
    except Exception:
        session.rollback()
        raise


def get_cart_summary(
    session: Session,
    buyer_id: str,
    coupon_code: Optional[str] = None,
    delivery_policy: Optional[DeliveryFeePolicy] = None,
    now: Optional[datetime] = None,
    currency_symbol: str = '৳'
) -> Dict[str, Any]:
    """
    Cart lines with totals, validation and coupon outcome.

    An unusable coupon is reported under 'coupon' and simply gives no discount.
    """
    items = get_cart_items(session, buyer_id)
    lines = [item.to_line() for item in items]
    subtotal = sum((line.line_total for line in lines), to_decimal(0))

    coupon_check = None
    terms = None
    if coupon_code:
        coupon_check = check_coupon_code(
            session, coupon_code, subtotal, buyer_id=buyer_id, items=lines, now=now,
            currency_symbol=currency_symbol
        )
        if coupon_check.is_valid:
            terms = coupon_check.coupon.to_terms()

    totals = calculate_cart_totals(
        lines,
        coupon=terms,
        delivery_policy=delivery_policy,
        supplier_name=supplier_name_resolver(session),
        now=now
    )
    validation = validate_cart(lines, terms, now, currency_symbol)
    list_prices = {item.product_id: item.product.unit_price for item in items}

    return {
        'items': [
            dict(
                id=item.id,
                item_key=line.item_id,
                product_id=line.product_id,
                product_name=line.product_name,
                supplier_id=line.supplier_id,
                quantity=line.quantity,
                unit_price=str(line.unit_price),
                line_total=str(line.line_total),
                moq=line.moq,
                stock=line.stock,
                rfq_id=line.rfq_id,
                quote_id=line.quote_id,
                is_price_locked=line.is_price_locked,
            )
            for item, line in zip(items, lines)
        ],
        'subtotal': str(totals.subtotal),
        'discount': str(totals.discount),
        'delivery_fee': str(totals.delivery_fee),
        'total': str(totals.total),
        'savings': str(calculate_savings(lines, list_prices)),
        'supplier_breakdown': [
            {
                'supplier_id': group.supplier_id,
                'supplier_name': group.supplier_name,
                'subtotal': str(group.subtotal),
                'delivery_fee': str(group.delivery_fee),
                'item_count': group.item_count,
            }
            for group in totals.supplier_breakdown
        ],
        'validation': {
            'is_valid': validation.is_valid,
            'cart_errors': validation.cart_errors,
            'item_errors': {v.item_id: v.errors for v in validation.item_validations if not v.is_valid},
        },
        'coupon': coupon_check.to_dict() if coupon_check else None,
    }


def purge_stale_cart_items(session: Session, days: int = 7, now: Optional[datetime] = None) -> int:
    """Drop cart lines untouched for more than `days` days."""
    cutoff = (now or datetime.now()) - timedelta(days=days)
    try:
        deleted = session.query(CartItem).filter(CartItem.updated_at < cutoff).delete()
        session.commit()
        logger.info(f"Purged {deleted} stale cart items (older than {cutoff:%Y-%m-%d %H:%M})")
        return deleted
    except Exception:
        session.rollback()
        raise
