"""Coupon lookup, validation and redemption."""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.models import Coupon, CouponRedemption
from marketplace.services.cart_pricing import CartLine, calculate_discount, validate_coupon, ZERO
from marketplace.utils.dates import has_passed
from marketplace.utils.formatters import Number, format_money, to_decimal

logger = logging.getLogger(__name__)

# Error codes returned to the storefront
INVALID = 'INVALID'
INACTIVE = 'INACTIVE'
EXPIRED = 'EXPIRED'
MIN_ORDER = 'MIN_ORDER'
MAX_USES = 'MAX_USES'
ALREADY_USED = 'ALREADY_USED'
NOT_APPLICABLE = 'NOT_APPLICABLE'


@dataclass
class CouponCheck:
    is_valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    coupon: Optional[Coupon] = None
    discount: Decimal = ZERO
    description: Optional[str] = None

    def to_dict(self):
        data = {'is_valid': self.is_valid}
        if self.is_valid:
            data.update({
                'coupon': self.coupon.to_dict(),
                'calculated_discount': str(self.discount),
                'description': self.description,
            })
        else:
            data.update({'error': self.error, 'error_code': self.error_code})
        return data


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def find_coupon(session: Session, code: str, lock: bool = False) -> Optional[Coupon]:
    query = session.query(Coupon).filter(Coupon.code == normalize_code(code))
    if lock:
        # Usage counters are checked and then incremented in the same transaction
        query = query.with_for_update().populate_existing()
    return query.first()


def _already_used_by(session: Session, coupon: Coupon, buyer_id: str) -> bool:
    return session.query(CouponRedemption).filter(
        CouponRedemption.coupon_id == coupon.id,
        CouponRedemption.buyer_id == buyer_id
    ).first() is not None


def check_coupon_code(
    session: Session,
    code: str,
    subtotal: Number,
    buyer_id: Optional[str] = None,
    items: Optional[List[CartLine]] = None,
    now: Optional[datetime] = None,
    currency_symbol: str = '৳',
    lock: bool = False
) -> CouponCheck:
    """
    Validate a coupon code against a cart subtotal.

    Checks run in order: existence, active flag, expiry, minimum order,
    global usage cap, single use per buyer, product/supplier scope.
    Never raises for an unusable coupon; the result carries an error code.
    With lock=True the coupon row stays locked until the caller commits.
    """
    subtotal = to_decimal(subtotal)
    coupon = find_coupon(session, code, lock=lock)

    if not coupon:
        return CouponCheck(False, 'Invalid coupon code. Please check and try again.', INVALID)

    if not coupon.active:
        return CouponCheck(False, 'This coupon is no longer active.', INACTIVE, coupon)

    if has_passed(coupon.expiry_date, now):
        return CouponCheck(
            False,
            f"This coupon expired on {coupon.expiry_date.strftime('%B %d, %Y')}.",
            EXPIRED,
            coupon
        )

    if subtotal < coupon.min_order_value:
        missing = coupon.min_order_value - subtotal
        return CouponCheck(
            False,
            f"Minimum order of {format_money(coupon.min_order_value, currency_symbol)} required. "
            f"Add {format_money(missing, currency_symbol)} more to use this coupon.",
            MIN_ORDER,
            coupon
        )

    if coupon.is_exhausted:
        return CouponCheck(False, 'This coupon has reached its maximum usage limit.', MAX_USES, coupon)

    if coupon.single_use and buyer_id and _already_used_by(session, coupon, buyer_id):
        return CouponCheck(False, 'You have already used this coupon.', ALREADY_USED, coupon)

    terms = coupon.to_terms()
    scope = validate_coupon(terms, subtotal, items, now, currency_symbol)
    if not scope.valid:
        return CouponCheck(False, scope.message, NOT_APPLICABLE, coupon)

    return CouponCheck(
        True,
        coupon=coupon,
        discount=calculate_discount(terms, subtotal, items, now),
        description=coupon.description
    )


def redeem_coupon(session: Session, coupon: Coupon, buyer_id: str, order_id: int, discount: Number) -> CouponRedemption:
    """Record a coupon use for an order. The caller commits."""
    coupon.used_count = (coupon.used_count or 0) + 1
    redemption = CouponRedemption(
        coupon_id=coupon.id,
        buyer_id=buyer_id,
        order_id=order_id,
        discount_amount=to_decimal(discount)
    )
    session.add(redemption)
    logger.info(f"Coupon {coupon.code} redeemed by {buyer_id} on order {order_id}")
    return redemption
