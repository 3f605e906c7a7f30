"""
Pydantic schemas for auth and user endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketplace.db.models.enums import UserRole, UserStatus
from marketplace.schemas.common import PageMeta


class RegisterRequest(BaseModel):
    """Request schema for account registration."""
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., description="Password (sent to the identity provider only)", min_length=8, max_length=128)
    first_name: str = Field(..., description="First name", min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, description="Last name", max_length=100)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "ana@example.com",
            "password": "s3cret-passw0rd",
            "first_name": "Ana",
            "last_name": "Souza",
        }
    })


class UserResponse(BaseModel):
    id: int = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="Role")
    status: UserStatus = Field(..., description="Account status")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(PageMeta):
    items: List[UserResponse] = Field(..., description="Users on this page")


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, description="Display name", min_length=2, max_length=100)


class AdminUserUpdate(BaseModel):
    """Role and status changes made by an admin."""
    role: Optional[UserRole] = Field(None, description="New role")
    status: Optional[UserStatus] = Field(None, description="New account status")
