"""Order item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId


class OrderItem(Base):
    """Order line. Prices are copied at checkout so later price changes don't alter the order."""

    __tablename__ = 'order_item'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True)
    rfq_id = Column(BigInteger, ForeignKey('rfq.id'), nullable=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(14, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, product_id={self.product_id}, qty={self.quantity})>"

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'supplier_id': self.supplier_id,
            'rfq_id': self.rfq_id,
            'quote_id': self.quote_id,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'line_total': str(self.line_total),
        }
