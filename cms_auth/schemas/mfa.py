"""
Pydantic schemas for 2FA profile management endpoints
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from cms_auth.schemas.auth import CamelModel


# 2FA setup schemas

class TwoFactorSetupData(CamelModel):
    """
    Enrolment material for the authenticator app

    `secret` is for manual entry, `qrCode` can be embedded in an <img> tag.
    """
    secret: str
    qr_code: str
    otpauth_url: str


class TwoFactorSetupResponse(CamelModel):
    success: bool = True
    data: TwoFactorSetupData


class TwoFactorEnableRequest(CamelModel):
    """Confirms enrolment with a code from the app"""
    token: str = Field(..., min_length=6, max_length=6)

    @field_validator('token')
    @classmethod
    def code_must_be_numeric(cls, v):
        if not v.isdigit():
            raise ValueError('Code must be numeric')
        return v


class TwoFactorEnableResponse(CamelModel):
    success: bool = True
    message: str = "2FA enabled successfully"
    backup_codes: List[str] = Field(
        ...,
        description="One-time backup codes, shown only once"
    )


# Password-confirmed operations

class PasswordConfirmRequest(CamelModel):
    password: str = Field(..., min_length=1)


class TwoFactorDisableResponse(CamelModel):
    success: bool = True
    message: str = "2FA disabled successfully"


class BackupCodesRegenerateResponse(CamelModel):
    success: bool = True
    message: str = "Backup codes regenerated"
    backup_codes: List[str]


# Status

class TwoFactorStatusData(CamelModel):
    two_factor_enabled: bool
    backup_codes_remaining: int
    enabled_at: Optional[datetime] = None


class TwoFactorStatusResponse(CamelModel):
    success: bool = True
    data: TwoFactorStatusData
