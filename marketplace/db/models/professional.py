from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from marketplace.db.base import Base
from marketplace.db.models.enums import ListingStatus


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    name = Column(String, nullable=False, index=True)
    occupation = Column(String, nullable=False)
    bio = Column(Text, nullable=False, default="")
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    city = Column(String, nullable=True, index=True)
    state = Column(String(2), nullable=True, index=True)
    portfolio = Column(JSON, nullable=False, default=list)  # stored filenames

    status = Column(Enum(ListingStatus), nullable=False, default=ListingStatus.PENDING, index=True)
    featured = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", backref="professionals")
    category = relationship("Category")

    def __repr__(self):
        return f"<Professional(id={self.id}, name='{self.name}', status='{self.status}')>"
