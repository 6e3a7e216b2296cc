"""Quote model - a supplier's answer to an RFQ."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class QuoteStatus(str, enum.Enum):
    """Quote status enum."""
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    COUNTERED = 'countered'


class Quote(Base):
    """
    Price offer sent by a supplier in answer to an RFQ.

    counter_price/counter_note hold the buyer's latest counter-offer; the
    full negotiation is kept in QuoteCounterOffer.
    """

    __tablename__ = 'quote'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    rfq_id = Column(BigInteger, ForeignKey('rfq.id'), nullable=False, index=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    validity_period = Column(DateTime, nullable=False)  # quote valid until
    terms = Column(Text, nullable=True)
    status = Column(
        SQLEnum(QuoteStatus, name='quote_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=QuoteStatus.PENDING
    )
    counter_price = Column(Numeric(12, 2), nullable=True)
    counter_note = Column(Text, nullable=True)
    agreed_quantity = Column(Integer, nullable=True)
    deposit_percentage = Column(Integer, nullable=False, default=0, server_default='0')
    delivery_time = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    rfq = relationship('Rfq', back_populates='quotes')
    supplier = relationship('Supplier')
    counter_offers = relationship(
        'QuoteCounterOffer',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteCounterOffer.id'
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, rfq_id={self.rfq_id}, unit_price={self.unit_price}, status='{self.status.value}')>"

    @property
    def is_expired(self):
        """Check if quote validity has lapsed (calculated, not stored)."""
        from marketplace.services.rfq_lifecycle import is_expired
        if self.status in (QuoteStatus.PENDING, QuoteStatus.COUNTERED) and self.validity_period:
            return is_expired(self.validity_period)
        return False

    def to_dict(self):
        return {
            'id': self.id,
            'rfq_id': self.rfq_id,
            'supplier_id': self.supplier_id,
            'unit_price': str(self.unit_price),
            'total_price': str(self.total_price),
            'validity_period': self.validity_period.isoformat() if self.validity_period else None,
            'terms': self.terms,
            'status': self.status.value,
            'is_expired': self.is_expired,
            'counter_price': str(self.counter_price) if self.counter_price is not None else None,
            'counter_note': self.counter_note,
            'agreed_quantity': self.agreed_quantity,
            'counter_offers': [offer.to_dict() for offer in self.counter_offers],
        }
