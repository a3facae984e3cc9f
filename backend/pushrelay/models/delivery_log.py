"""DeliveryLog model - append-only record of delivery attempts."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text

from ..database import Base


class DeliveryLog(Base):
    """Outcome of processing one notification in one cycle."""

    __tablename__ = "delivery_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(Integer, nullable=False, index=True)
    device_id = Column(String, nullable=False)
    channel = Column(String, nullable=True)  # web_push, fcm, fallback_queued
    # delivered, permanent_failure, transient_failure, queued_no_channel, device_not_found
    outcome = Column(String, nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
