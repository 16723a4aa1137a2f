"""
User Schemas
Pydantic models for user-related requests and responses
"""

from pydantic import EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from expense_approvals.models.user import UserRole
from expense_approvals.schemas.policy import CamelModel


class UserCreate(CamelModel):
    """Schema for an administrator creating a user"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=200)
    role: UserRole = UserRole.EMPLOYEE
    reports_to: Optional[int] = Field(None, gt=0)

    @field_validator("role", mode="before")
    @classmethod
    def upper_role(cls, value):
        return value.upper() if isinstance(value, str) else value


class UserUpdate(CamelModel):
    """Schema for updating user information"""
    full_name: Optional[str] = Field(None, min_length=2, max_length=200)
    role: Optional[UserRole] = None
    reports_to: Optional[int] = Field(None, gt=0)
    clear_manager: bool = False
    is_active: Optional[bool] = None

    @field_validator("role", mode="before")
    @classmethod
    def upper_role(cls, value):
        return value.upper() if isinstance(value, str) else value


class UserResponse(CamelModel):
    """Schema for user response"""
    id: int
    email: str
    full_name: str
    role: UserRole
    company_id: int
    reports_to: Optional[int] = None
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None
