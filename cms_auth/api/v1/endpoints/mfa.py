"""
2FA (TOTP) profile management endpoints

Mounted under /profile/2fa; every route needs a fully authenticated user.
Failures are answered as `{success: false, message}`.
"""

from fastapi import APIRouter, Depends

from cms_auth.api.dependencies import get_current_user, get_mfa_service
from cms_auth.api.v1.endpoints.auth import two_factor_error_response
from cms_auth.core.exceptions import AuthError
from cms_auth.models import User
from cms_auth.schemas.mfa import (
    BackupCodesRegenerateResponse,
    PasswordConfirmRequest,
    TwoFactorDisableResponse,
    TwoFactorEnableRequest,
    TwoFactorEnableResponse,
    TwoFactorSetupData,
    TwoFactorSetupResponse,
    TwoFactorStatusData,
    TwoFactorStatusResponse,
)
from cms_auth.services.mfa_service import MfaService


router = APIRouter()


@router.get("", response_model=TwoFactorStatusResponse)
def get_two_factor_status(
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Get 2FA status

    **Returns:**
    - twoFactorEnabled: Whether 2FA is on
    - backupCodesRemaining: Unused backup codes
    - enabledAt: When 2FA was turned on
    """
    try:
        status_info = mfa_service.get_status(current_user)
    except AuthError as e:
        return two_factor_error_response(e)

    return TwoFactorStatusResponse(data=TwoFactorStatusData(**status_info))


@router.post("/setup", response_model=TwoFactorSetupResponse)
def setup_two_factor(
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Start TOTP enrolment

    Generates a secret and QR code. Scan the QR code with an authenticator
    app (Google Authenticator, Authy, 1Password, ...), then call
    `/profile/2fa/enable` with the 6-digit code it shows to activate 2FA.
    Calling setup again before enabling replaces the pending secret.

    **Errors:**
    - 400: 2FA already enabled (disable it first to re-enroll)
    """
    try:
        totp_secret, qr_code = mfa_service.setup(current_user)
    except AuthError as e:
        return two_factor_error_response(e)

    return TwoFactorSetupResponse(
        data=TwoFactorSetupData(
            secret=totp_secret.secret,
            qr_code=qr_code,
            otpauth_url=totp_secret.enrollment_uri
        )
    )


@router.post("/enable", response_model=TwoFactorEnableResponse)
def enable_two_factor(
    request_data: TwoFactorEnableRequest,
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Activate 2FA with a code from the authenticator app

    **Returns:**
    - backupCodes: 10 one-time backup codes. They are shown only once;
      store them somewhere safe.

    **Errors:**
    - 400: No setup in progress, already enabled, or wrong code
    """
    try:
        backup_codes = mfa_service.enable(current_user, request_data.token)
    except AuthError as e:
        return two_factor_error_response(e)

    return TwoFactorEnableResponse(backup_codes=backup_codes)


@router.post("/disable", response_model=TwoFactorDisableResponse)
def disable_two_factor(
    request_data: PasswordConfirmRequest,
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Turn 2FA off (password required)

    **Errors:**
    - 400: 2FA not enabled
    - 401: Incorrect password
    """
    try:
        mfa_service.disable(current_user, request_data.password)
    except AuthError as e:
        return two_factor_error_response(e)

    return TwoFactorDisableResponse()


@router.post("/regenerate-backup-codes", response_model=BackupCodesRegenerateResponse)
def regenerate_backup_codes(
    request_data: PasswordConfirmRequest,
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Replace all backup codes (password required)

    Old codes stop working immediately.
    """
    try:
        backup_codes = mfa_service.regenerate_backup_codes(current_user, request_data.password)
    except AuthError as e:
        return two_factor_error_response(e)

    return BackupCodesRegenerateResponse(backup_codes=backup_codes)
