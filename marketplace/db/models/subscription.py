"""
Subscription model linking a user to a plan, optionally for a business or professional.
"""
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Index, Enum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from marketplace.db.base import Base
from marketplace.db.models.enums import SubscriptionStatus

_ACTIVE_ONLY = text("status = 'ACTIVE'")


class Subscription(Base):
    """
    A user's subscription to a plan.

    At most one ACTIVE subscription may exist per business and per
    professional; the partial unique indexes enforce it in the database.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="SET NULL"), nullable=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.PENDING_PAYMENT, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    auto_renew = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    user = relationship("User", backref="subscriptions")
    plan = relationship("Plan", backref="subscriptions")
    business = relationship("Business", backref="subscriptions")
    professional = relationship("Professional", backref="subscriptions")
    payments = relationship(
        "Payment",
        back_populates="subscription",
        order_by="Payment.id.desc()",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_active_subscription_business", "business_id", unique=True,
            postgresql_where=_ACTIVE_ONLY, sqlite_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_active_subscription_professional", "professional_id", unique=True,
            postgresql_where=_ACTIVE_ONLY, sqlite_where=_ACTIVE_ONLY,
        ),
        Index("idx_subscription_status_end", "status", "end_date"),
    )

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
