"""
Pydantic schemas for business and professional listings.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketplace.db.models.enums import ListingStatus
from marketplace.schemas.common import PageMeta

STATE_PATTERN = "^[A-Za-z]{2}$"


class BusinessCreate(BaseModel):
    """Schema for creating a business listing."""
    name: str = Field(..., description="Business name", min_length=2, max_length=120)
    description: str = Field(..., description="What the business does", min_length=10, max_length=5000)
    category_id: Optional[int] = Field(None, description="Category ID")
    phone: Optional[str] = Field(None, description="Contact phone", max_length=30)
    email: Optional[EmailStr] = Field(None, description="Contact email")
    website: Optional[str] = Field(None, description="Website URL", max_length=255)
    address: Optional[str] = Field(None, description="Street address", max_length=255)
    city: Optional[str] = Field(None, description="City", max_length=100)
    state: Optional[str] = Field(None, description="Two-letter state code", pattern=STATE_PATTERN)


class BusinessUpdate(BaseModel):
    """Schema for updating a business listing; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, description="Business name", min_length=2, max_length=120)
    description: Optional[str] = Field(None, description="What the business does", min_length=10, max_length=5000)
    category_id: Optional[int] = Field(None, description="Category ID")
    phone: Optional[str] = Field(None, description="Contact phone", max_length=30)
    email: Optional[EmailStr] = Field(None, description="Contact email")
    website: Optional[str] = Field(None, description="Website URL", max_length=255)
    address: Optional[str] = Field(None, description="Street address", max_length=255)
    city: Optional[str] = Field(None, description="City", max_length=100)
    state: Optional[str] = Field(None, description="Two-letter state code", pattern=STATE_PATTERN)


class BusinessResponse(BaseModel):
    id: int
    user_id: int
    category_id: Optional[int] = None
    name: str
    description: str
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    photos: List[str] = []
    status: ListingStatus
    featured: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BusinessListResponse(PageMeta):
    items: List[BusinessResponse] = Field(..., description="Businesses on this page")


class ProfessionalCreate(BaseModel):
    """Schema for creating a professional profile."""
    name: str = Field(..., description="Full name", min_length=2, max_length=120)
    occupation: str = Field(..., description="Occupation", min_length=2, max_length=120)
    bio: str = Field(..., description="Short biography", min_length=10, max_length=5000)
    category_id: Optional[int] = Field(None, description="Category ID")
    phone: Optional[str] = Field(None, description="Contact phone", max_length=30)
    email: Optional[EmailStr] = Field(None, description="Contact email")
    city: Optional[str] = Field(None, description="City", max_length=100)
    state: Optional[str] = Field(None, description="Two-letter state code", pattern=STATE_PATTERN)


class ProfessionalUpdate(BaseModel):
    name: Optional[str] = Field(None, description="Full name", min_length=2, max_length=120)
    occupation: Optional[str] = Field(None, description="Occupation", min_length=2, max_length=120)
    bio: Optional[str] = Field(None, description="Short biography", min_length=10, max_length=5000)
    category_id: Optional[int] = Field(None, description="Category ID")
    phone: Optional[str] = Field(None, description="Contact phone", max_length=30)
    email: Optional[EmailStr] = Field(None, description="Contact email")
    city: Optional[str] = Field(None, description="City", max_length=100)
    state: Optional[str] = Field(None, description="Two-letter state code", pattern=STATE_PATTERN)


class ProfessionalResponse(BaseModel):
    id: int
    user_id: int
    category_id: Optional[int] = None
    name: str
    occupation: str
    bio: str
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    portfolio: List[str] = []
    status: ListingStatus
    featured: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProfessionalListResponse(PageMeta):
    items: List[ProfessionalResponse] = Field(..., description="Professionals on this page")
