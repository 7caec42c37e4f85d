"""Webhook delivery model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from cla_api.db.base import Base


class WebhookDelivery(Base):
    """Seen GitHub delivery ids; insert-if-absent is the only write."""

    __tablename__ = "webhook_deliveries"

    delivery_id = Column(String(255), primary_key=True)
    event = Column(String(100), nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
