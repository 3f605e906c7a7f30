"""
Pydantic schemas for blog posts, categories and comments.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.db.models.enums import PostStatus
from marketplace.schemas.common import PageMeta


class PostCreate(BaseModel):
    title: str = Field(..., description="Post title", min_length=3, max_length=200)
    content: str = Field(..., description="Post body", min_length=10)
    excerpt: Optional[str] = Field(None, description="Short summary", max_length=500)
    category_id: Optional[int] = Field(None, description="Category ID")
    status: PostStatus = Field(PostStatus.DRAFT, description="DRAFT or PUBLISHED")


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, description="Post title", min_length=3, max_length=200)
    content: Optional[str] = Field(None, description="Post body", min_length=10)
    excerpt: Optional[str] = Field(None, description="Short summary", max_length=500)
    category_id: Optional[int] = Field(None, description="Category ID")
    status: Optional[PostStatus] = Field(None, description="DRAFT or PUBLISHED")


class PostResponse(BaseModel):
    id: int
    author_id: int
    category_id: Optional[int] = None
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    image: Optional[str] = None
    status: PostStatus
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PostListResponse(PageMeta):
    items: List[PostResponse] = Field(..., description="Posts on this page")


class CategoryCreate(BaseModel):
    name: str = Field(..., description="Category name", min_length=2, max_length=100)
    description: Optional[str] = Field(None, description="Description", max_length=500)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, description="Category name", min_length=2, max_length=100)
    description: Optional[str] = Field(None, description="Description", max_length=500)


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CommentCreate(BaseModel):
    content: str = Field(..., description="Comment text", min_length=1, max_length=2000)


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
