"""
Pydantic schemas for the authentication endpoints.

JSON bodies use camelCase (accessToken, needsOnboarding, ...) to match the
frontend; Python code uses snake_case field names.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from saveplate.models.user import UserRole


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SignupRequest(CamelModel):
    """Request schema for password signup."""
    email: EmailStr
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(
        ...,
        min_length=8,
        max_length=72,  # bcrypt limit
        description="8-72 characters with at least one letter and one number"
    )

    @field_validator('username')
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Username is required')
        return v

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        if not re.search(r'[A-Za-z]', v):
            raise ValueError('Password must contain at least one letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v


class SigninRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class MagicLinkRequest(CamelModel):
    email: EmailStr


class MagicLinkResponse(CamelModel):
    message: str
    sent: bool
    link: Optional[str] = None


class MagicLinkVerifyRequest(CamelModel):
    token: str = Field(..., min_length=1)


class SendVerificationRequest(CamelModel):
    email: EmailStr


class VerifyEmailCodeRequest(CamelModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=12, description="6-digit verification code")


class SendCodeResponse(CamelModel):
    """Response after sending verification code"""
    success: bool
    message: str
    expires_in_minutes: int = 10


class VerificationResponse(CamelModel):
    """Response after verification attempt"""
    success: bool
    message: str
    email_verified: bool = False


class FacebookCallbackRequest(CamelModel):
    code: str = Field(..., min_length=1)
    redirect_uri: Optional[str] = None


class FacebookTokenRequest(CamelModel):
    access_token: str = Field(..., min_length=1)


class GoogleTokenRequest(CamelModel):
    token: str = Field(..., min_length=1, description="Google ID Token from frontend")


class UserResponse(CamelModel):
    """User projection returned to clients (no password hash)."""
    id: int
    email: str
    username: str
    role: UserRole
    email_verified: bool
    location: Optional[str] = None
    phone_number: Optional[str] = None
    maps_link: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class AuthResponse(CamelModel):
    """Token-bearing response for every successful sign-in."""
    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
    needs_onboarding: bool = False
    redirect_to_onboarding: bool = False


class CurrentUserResponse(CamelModel):
    message: str = "Authenticated"
    user: UserResponse
    redirect_to_onboarding: bool = False
