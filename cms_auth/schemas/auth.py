"""
Pydantic schemas for authentication endpoints

JSON bodies use camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from cms_auth.models.user import UserRole


class CamelModel(BaseModel):
    """Base model with camelCase aliases that also accepts field names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request schemas

class RegisterRequest(CamelModel):
    """User registration request"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    full_name: str = Field(..., min_length=2, max_length=255)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()


class LoginRequest(CamelModel):
    """User login request"""
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()


class RefreshRequest(CamelModel):
    """Refresh request; the token normally arrives in the httpOnly cookie instead"""
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    """Password change request"""
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


class TwoFactorCodeRequest(CamelModel):
    """
    Second-factor code submission

    `token` is a 6-digit TOTP code, or a backup code when
    `useBackupCode` is true.
    """
    token: str = Field(..., min_length=1, max_length=32)
    use_backup_code: bool = False

    @field_validator('token')
    @classmethod
    def strip_token(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Code is required')
        return v


# Response schemas

class UserResponse(CamelModel):
    """User information in response"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LoginResponse(CamelModel):
    """Login response when no second factor is needed"""
    message: str = "Login successful"
    user: UserResponse
    access_token: str
    requires_2fa: bool = Field(default=False, alias="requires2FA")


class TwoFactorRequiredResponse(CamelModel):
    """Login response when the user must still pass 2FA"""
    message: str = "2FA verification required"
    requires_2fa: bool = Field(default=True, alias="requires2FA")
    temp_token: str
    user_id: str


class RegisterResponse(CamelModel):
    message: str = "User registered successfully"
    user: UserResponse


class TokenRefreshResponse(CamelModel):
    access_token: str


class MessageResponse(CamelModel):
    message: str


class MeResponse(CamelModel):
    user: UserResponse


class TwoFactorLoginResponse(CamelModel):
    """Completed two-step login"""
    success: bool = True
    message: str = "2FA verification successful"
    user: UserResponse
    access_token: str
    backup_codes_remaining: Optional[int] = None


class TwoFactorVerifyResponse(CamelModel):
    success: bool = True
    message: str = "2FA verification successful"
    backup_codes_remaining: Optional[int] = None

