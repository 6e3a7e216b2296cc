"""Order model."""
import enum
from sqlalchemy import Column, String, Text, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class OrderStatus(str, enum.Enum):
    """Order fulfilment status."""
    PENDING = 'pending'
    PLACED = 'placed'
    CONFIRMED = 'confirmed'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    OUT_FOR_DELIVERY = 'out_for_delivery'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    RETURNED = 'returned'


class PaymentStatus(str, enum.Enum):
    """Payment status."""
    PENDING = 'pending'
    DEPOSIT_PAID = 'deposit_paid'
    FULL_PAID = 'full_paid'
    REFUNDED = 'refunded'


CANCELLABLE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
)


class Order(Base):
    """Buyer order placed from the cart or from an accepted quote."""

    __tablename__ = 'orders'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_number = Column(String(32), nullable=True, unique=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)
    status = Column(String(32), nullable=False, default=OrderStatus.PLACED.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(32), nullable=True)
    coupon_code = Column(String(64), nullable=True)
    delivery_location = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}', total={self.total_amount})>"

    @property
    def is_cancellable(self):
        return self.status in [s.value for s in CANCELLABLE_STATUSES]

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'buyer_id': self.buyer_id,
            'subtotal': str(self.subtotal),
            'discount': str(self.discount),
            'delivery_fee': str(self.delivery_fee),
            'total_amount': str(self.total_amount),
            'status': self.status,
            'payment_status': self.payment_status,
            'coupon_code': self.coupon_code,
            'cancellation_reason': self.cancellation_reason,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'items': [item.to_dict() for item in self.items],
        }
