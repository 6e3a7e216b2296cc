"""Cart item model for the persistent buyer cart."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId
from marketplace.services.cart_pricing import CartLine


class CartItem(Base):
    """
    Cart Item - one product line in a buyer's cart.

    Lines added from an accepted quote carry the negotiated unit price and
    keep it (is_price_locked) even if the list price changes later.
    """

    __tablename__ = 'cart_item'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    locked_unit_price = Column(Numeric(12, 2), nullable=True)
    rfq_id = Column(BigInteger, ForeignKey('rfq.id'), nullable=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return f"<CartItem(id={self.id}, buyer_id='{self.buyer_id}', product_id={self.product_id}, qty={self.quantity})>"

    @property
    def is_price_locked(self):
        return self.locked_unit_price is not None

    @property
    def unit_price(self):
        if self.is_price_locked:
            return self.locked_unit_price
        return self.product.unit_price

    def to_line(self) -> CartLine:
        """Calculator view of this row, with live product MOQ and stock."""
        product = self.product
        return CartLine(
            product_id=product.id,
            supplier_id=product.supplier_id,
            product_name=product.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            moq=product.moq,
            stock=product.stock,
            rfq_id=self.rfq_id,
            quote_id=self.quote_id,
            is_price_locked=self.is_price_locked
        )
