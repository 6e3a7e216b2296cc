"""Coupon models: discount codes and their redemptions."""
import enum
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, Numeric, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId
from marketplace.services.cart_pricing import CouponTerms


class DiscountType(str, enum.Enum):
    """Coupon discount type."""
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


class Coupon(Base):
    """
    Discount code.

    Terms (type, value, minimum order, expiry) are immutable once issued;
    only the usage counters change as buyers redeem it.
    """

    __tablename__ = 'coupon'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    discount_type = Column(String(20), nullable=False, default=DiscountType.FIXED.value)
    value = Column(Numeric(12, 2), nullable=False)
    min_order_value = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    max_discount = Column(Numeric(12, 2), nullable=True)  # cap for percentage coupons
    expiry_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)

    # Scope (empty = whole cart)
    applicable_product_ids = Column(JSON, nullable=True)
    applicable_supplier_ids = Column(JSON, nullable=True)

    # Usage limits
    active = Column(Boolean, nullable=False, default=True)
    single_use = Column(Boolean, nullable=False, default=False)  # once per buyer
    max_uses = Column(Integer, nullable=True)  # across all buyers
    used_count = Column(Integer, nullable=False, default=0, server_default='0')

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    redemptions = relationship('CouponRedemption', back_populates='coupon', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Coupon(code='{self.code}', type='{self.discount_type}', value={self.value})>"

    @property
    def is_exhausted(self):
        return self.max_uses is not None and self.used_count >= self.max_uses

    def to_terms(self) -> CouponTerms:
        """Pricing view of this coupon for the cart calculator."""
        return CouponTerms(
            code=self.code,
            discount_type=self.discount_type,
            value=self.value,
            min_order_value=self.min_order_value or 0,
            expiry_date=self.expiry_date,
            max_discount=self.max_discount,
            applicable_product_ids=list(self.applicable_product_ids or []),
            applicable_supplier_ids=list(self.applicable_supplier_ids or []),
        )

    def to_dict(self):
        return {
            'code': self.code,
            'discount_type': self.discount_type,
            'value': str(self.value),
            'min_order_value': str(self.min_order_value),
            'max_discount': str(self.max_discount) if self.max_discount is not None else None,
            'expiry_date': self.expiry_date.isoformat(),
            'applicable_product_ids': self.applicable_product_ids or [],
            'applicable_supplier_ids': self.applicable_supplier_ids or [],
        }


class CouponRedemption(Base):
    """A coupon applied to a placed order."""

    __tablename__ = 'coupon_redemption'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    coupon_id = Column(BigInteger, ForeignKey('coupon.id'), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    redeemed_at = Column(DateTime, nullable=False, default=datetime.now)

    # Relationships
    coupon = relationship('Coupon', back_populates='redemptions')

    def __repr__(self):
        return f"<CouponRedemption(coupon_id={self.coupon_id}, buyer_id='{self.buyer_id}', order_id={self.order_id})>"
