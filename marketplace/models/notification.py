"""In-app notification model."""
from sqlalchemy import Column, String, Text, Boolean, DateTime
from sqlalchemy.sql import func
from marketplace.database import Base, BigIntegerId


class Notification(Base):
    """Bell notification shown to a buyer or seller (e.g. 'New Quote Received')."""

    __tablename__ = 'notification'

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)
    link = Column(String(255), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Notification(user_id='{self.user_id}', type='{self.type}')>"
