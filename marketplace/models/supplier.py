"""Supplier model."""
from sqlalchemy import Column, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class Supplier(Base):
    """Supplier (seller storefront) owned by a seller account."""

    __tablename__ = 'supplier'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=True, index=True)  # seller user id from the auth provider
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    products = relationship('Product', back_populates='supplier')

    def __repr__(self):
        return f"<Supplier(id={self.id}, name='{self.name}')>"
