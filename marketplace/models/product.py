"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class Product(Base):
    """Wholesale product listed by a supplier."""

    __tablename__ = 'product'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, unique=True)
    sku = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False)
    moq = Column(Integer, nullable=False, default=1, server_default='1')  # Minimum Order Quantity
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    sold_count = Column(Integer, nullable=False, default=0, server_default='0')
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    supplier = relationship('Supplier', back_populates='products')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', moq={self.moq}, stock={self.stock})>"

    @property
    def supplier_name(self):
        return self.supplier.name if self.supplier else None

    def to_dict(self):
        return {
            'id': self.id,
            'supplier_id': self.supplier_id,
            'name': self.name,
            'sku': self.sku,
            'unit_price': str(self.unit_price),
            'moq': self.moq,
            'stock': self.stock,
            'active': self.active,
        }
