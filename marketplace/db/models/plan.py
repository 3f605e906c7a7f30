"""
Plan model: a purchasable offering for businesses, professionals or job posts.
"""
from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, DateTime, JSON, Enum
from sqlalchemy.sql import func
from marketplace.db.base import Base
from marketplace.db.models.enums import PlanType


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    duration = Column(Integer, nullable=False)  # days
    type = Column(Enum(PlanType), nullable=False, index=True)
    features = Column(JSON, nullable=False, default=list)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Plan(id={self.id}, name='{self.name}', type='{self.type}')>"
