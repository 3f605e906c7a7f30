"""
Pydantic schemas for reviews.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.db.models.enums import ListingStatus
from marketplace.schemas.common import PageMeta


class ReviewCreate(BaseModel):
    """A review targets exactly one business or professional."""
    business_id: Optional[int] = Field(None, description="Reviewed business")
    professional_id: Optional[int] = Field(None, description="Reviewed professional")
    rating: int = Field(..., description="Rating from 1 to 5", ge=1, le=5)
    comment: Optional[str] = Field(None, description="Review text", max_length=2000)

    @model_validator(mode="after")
    def check_single_target(self):
        if (self.business_id is None) == (self.professional_id is None):
            raise ValueError("Provide exactly one of business_id or professional_id")
        return self


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, description="Rating from 1 to 5", ge=1, le=5)
    comment: Optional[str] = Field(None, description="Review text", max_length=2000)


class ReviewResponse(BaseModel):
    id: int
    user_id: int
    business_id: Optional[int] = None
    professional_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    status: ListingStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReviewListResponse(PageMeta):
    items: List[ReviewResponse] = Field(..., description="Reviews on this page")
    average_rating: Optional[float] = Field(None, description="Average rating of the listed reviews")
