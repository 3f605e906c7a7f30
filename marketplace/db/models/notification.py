"""
Notification outbox.

Rows are written in the same transaction as the state change that triggers
them and delivered later by the dispatcher.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum, Index
from sqlalchemy.sql import func
from marketplace.db.base import Base
from marketplace.db.models.enums import NotificationStatus


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    template = Column(String, nullable=False)  # "welcome", "payment_confirmation", "subscription_canceled", "subscription_expiring"
    recipient = Column(String, nullable=False)
    context = Column(JSON, nullable=False, default=dict)
    status = Column(Enum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_notification_status_created", "status", "created_at"),
    )
