"""
Pydantic schemas shared across endpoints.
"""
from pydantic import BaseModel, Field

from marketplace.db.models.enums import ListingStatus


class MessageResponse(BaseModel):
    success: bool = Field(True, description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable result")


class ListingStatusUpdate(BaseModel):
    """Moderation decision for a business, professional or review."""
    status: ListingStatus = Field(..., description="New moderation status")


class PageMeta(BaseModel):
    total: int = Field(..., description="Total number of matching items")
    pages: int = Field(..., description="Number of pages")
    current_page: int = Field(..., description="Current page number")
