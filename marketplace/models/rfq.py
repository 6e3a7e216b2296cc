"""RFQ (Request for Quote) model."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, DateTime, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class RfqStatus(str, enum.Enum):
    """RFQ status enum."""
    PENDING = 'pending'
    QUOTED = 'quoted'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'
    CONVERTED = 'converted'


class Rfq(Base):
    """
    Request for Quote.

    A buyer asks one supplier to price a quantity of a product. The supplier
    answers with one or more Quotes; accepting a quote lets the buyer turn
    the RFQ into an order (status CONVERTED).
    """

    __tablename__ = 'rfq'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    target_price = Column(Numeric(12, 2), nullable=True)
    delivery_location = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    attachments = Column(JSON, nullable=True)
    status = Column(
        SQLEnum(RfqStatus, name='rfq_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RfqStatus.PENDING
    )
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product')
    supplier = relationship('Supplier')
    quotes = relationship('Quote', back_populates='rfq', cascade='all, delete-orphan', order_by='Quote.id')

    def __repr__(self):
        return f"<Rfq(id={self.id}, product_id={self.product_id}, qty={self.quantity}, status='{self.status.value}')>"

    @property
    def effective_status(self):
        """Status including expiry that has not been persisted yet."""
        from marketplace.services.rfq_lifecycle import effective_rfq_status
        return effective_rfq_status(self.status, self.expires_at)

    @property
    def accepted_quote(self):
        from marketplace.models.quote import QuoteStatus
        return next((q for q in self.quotes if q.status == QuoteStatus.ACCEPTED), None)

    def to_dict(self, include_quotes=False):
        data = {
            'id': self.id,
            'buyer_id': self.buyer_id,
            'supplier_id': self.supplier_id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'target_price': str(self.target_price) if self.target_price is not None else None,
            'delivery_location': self.delivery_location,
            'notes': self.notes,
            'attachments': self.attachments or [],
            'status': self.effective_status.value,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'quote_count': len(self.quotes),
        }
        if include_quotes:
            data['quotes'] = [q.to_dict() for q in self.quotes]
        return data
