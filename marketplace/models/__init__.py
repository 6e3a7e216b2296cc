"""Models package - exports all SQLAlchemy models."""
# Catalog
from marketplace.models.supplier import Supplier
from marketplace.models.product import Product

# Cart & Coupons
from marketplace.models.coupon import Coupon, CouponRedemption, DiscountType
from marketplace.models.cart_item import CartItem

# Negotiation
from marketplace.models.rfq import Rfq, RfqStatus
from marketplace.models.quote import Quote, QuoteStatus
from marketplace.models.quote_counter_offer import QuoteCounterOffer

# Orders
from marketplace.models.order import Order, OrderStatus, PaymentStatus, CANCELLABLE_STATUSES
from marketplace.models.order_item import OrderItem

from marketplace.models.notification import Notification

__all__ = [
    # Catalog
    'Supplier', 'Product',
    # Cart & Coupons
    'Coupon', 'CouponRedemption', 'DiscountType', 'CartItem',
    # Negotiation
    'Rfq', 'RfqStatus', 'Quote', 'QuoteStatus', 'QuoteCounterOffer',
    # Orders
    'Order', 'OrderStatus', 'PaymentStatus', 'CANCELLABLE_STATUSES', 'OrderItem',
    'Notification',
]
