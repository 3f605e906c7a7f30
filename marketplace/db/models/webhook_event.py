from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from marketplace.db.base import Base


class ProcessedWebhookEvent(Base):
    """Gateway event ids that were already applied; redeliveries are skipped."""
    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, nullable=False, unique=True, index=True)
    source = Column(String, nullable=False, default="stripe")
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
