"""Counter-offer history for quotes."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.database import Base, BigIntegerId


class QuoteCounterOffer(Base):
    """
    A counter-price proposed by the buyer on a quote.

    Rows are append-only so the negotiation can be audited.
    """

    __tablename__ = 'quote_counter_offer'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=False)
    counter_price = Column(Numeric(12, 2), nullable=False)
    previous_price = Column(Numeric(12, 2), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    # Relationships
    quote = relationship('Quote', back_populates='counter_offers')

    def __repr__(self):
        return f"<QuoteCounterOffer(quote_id={self.quote_id}, counter_price={self.counter_price})>"

    def to_dict(self):
        return {
            'id': self.id,
            'counter_price': str(self.counter_price),
            'previous_price': str(self.previous_price),
            'note': self.note,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
