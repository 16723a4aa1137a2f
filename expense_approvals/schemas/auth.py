"""
Authentication Schemas
Pydantic models for authentication requests and responses
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RegisterRequest(BaseModel):
    """Sign-up request: creates a company and its first ADMIN user"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=200, alias="fullName")
    company_name: str = Field(..., min_length=2, max_length=200, alias="companyName")
    country: str = Field(..., min_length=2, max_length=100)
    currency: str = Field("USD", min_length=3, max_length=3)

    model_config = {"populate_by_name": True}


class RefreshRequest(BaseModel):
    """Body of the token refresh endpoint"""
    refresh_token: str = Field(..., alias="refreshToken")

    model_config = {"populate_by_name": True}


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile"""
    full_name: Optional[str] = Field(None, min_length=2, max_length=200, alias="fullName")
    email: Optional[EmailStr] = None

    model_config = {"populate_by_name": True}


class PasswordChange(BaseModel):
    """Change-password request"""
    current_password: str = Field(..., min_length=1, alias="currentPassword")
    new_password: str = Field(..., min_length=8, max_length=100, alias="newPassword")

    model_config = {"populate_by_name": True}
