"""
Business listing model.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from marketplace.db.base import Base
from marketplace.db.models.enums import ListingStatus


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    website = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True, index=True)
    state = Column(String(2), nullable=True, index=True)
    photos = Column(JSON, nullable=False, default=list)  # stored filenames

    status = Column(Enum(ListingStatus), nullable=False, default=ListingStatus.PENDING, index=True)
    featured = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", backref="businesses")
    category = relationship("Category")
    jobs = relationship("Job", back_populates="business", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_business_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return f"<Business(id={self.id}, name='{self.name}', status='{self.status}')>"
