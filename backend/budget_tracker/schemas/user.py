"""
Pydantic schemas for User entity.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from budget_tracker.models.user import UserRole


class UserBase(BaseModel):
    """Base user schema."""
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    department: Optional[str] = Field(None, max_length=50)


class UserCreate(UserBase):
    """Schema for self-registration."""
    password: str = Field(..., min_length=6)


class AdminUserCreate(UserCreate):
    """Schema for user creation by an admin."""
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    """Schema for user update."""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    department: Optional[str] = Field(None, max_length=50)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class UserResponse(UserBase):
    """Schema for user response."""
    id: int
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    """Compact user reference embedded in other responses."""
    id: int
    name: str
    email: EmailStr

    class Config:
        from_attributes = True


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class Token(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    token_type: str = "bearer"
