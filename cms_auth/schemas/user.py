"""
Pydantic schemas for user administration endpoints
"""

from typing import Optional

from pydantic import EmailStr, Field, field_validator

from cms_auth.models.user import UserRole
from cms_auth.schemas.auth import CamelModel, UserResponse


class UserDetailResponse(CamelModel):
    user: UserResponse


class ProfileUpdateRequest(CamelModel):
    """Name and/or email change; omitted fields stay as they are"""
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class RoleUpdateRequest(CamelModel):
    role: UserRole


class StatusUpdateRequest(CamelModel):
    is_active: bool
