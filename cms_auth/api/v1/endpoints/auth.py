"""
Authentication endpoints
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from cms_auth.api.dependencies import (
    get_auth_service,
    get_client_ip,
    get_current_claims,
    get_current_user,
    get_mfa_service,
    get_pending_claims,
    get_refresh_token,
    get_settings,
    get_user_agent,
)
from cms_auth.core.config import Settings
from cms_auth.core.exceptions import AuthError, InvalidRefreshTokenError
from cms_auth.models import User
from cms_auth.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenRefreshResponse,
    TwoFactorCodeRequest,
    TwoFactorLoginResponse,
    TwoFactorRequiredResponse,
    TwoFactorVerifyResponse,
    UserResponse,
)
from cms_auth.services.auth_service import AuthService
from cms_auth.services.jwt_service import TokenClaims
from cms_auth.services.mfa_service import MfaService


router = APIRouter()


def set_refresh_cookie(response: Response, settings: Settings, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=settings.refresh_token_max_age
    )


def two_factor_error_response(error: AuthError) -> JSONResponse:
    """2FA endpoints answer `{success: false, message}` instead of `{error}`"""
    message = error.default_message if error.status_code >= 500 else error.message
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "message": message}
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    request_data: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Register a new user account

    New accounts always get the `user` role; admins promote them later.

    **Errors:**
    - 400: Email already registered or password too weak
    """
    user = auth_service.register_user(
        email=request_data.email,
        password=request_data.password,
        full_name=request_data.full_name
    )

    return RegisterResponse(user=UserResponse.model_validate(user))


@router.post("/login", response_model=Union[LoginResponse, TwoFactorRequiredResponse])
def login(
    response: Response,
    request_data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
    ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent)
):
    """
    Authenticate user with email and password

    **Returns:**
    - If 2FA not enabled: user, accessToken, requires2FA=false; the
      refresh token is set as an httpOnly cookie
    - If 2FA enabled: requires2FA=true, tempToken (valid only for
      /auth/verify-2fa-login) and userId

    **Errors:**
    - 401: Invalid email or password
    """
    result = auth_service.login(
        email=request_data.email,
        password=request_data.password,
        ip=ip,
        user_agent=user_agent
    )

    if result.requires_2fa:
        return TwoFactorRequiredResponse(temp_token=result.pending_token, user_id=result.user.id)

    set_refresh_cookie(response, settings, result.tokens.refresh_token)

    return LoginResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.tokens.access_token
    )


@router.post("/verify-2fa-login", response_model=TwoFactorLoginResponse, response_model_exclude_none=True)
def verify_two_factor_login(
    response: Response,
    request_data: TwoFactorCodeRequest,
    claims: TokenClaims = Depends(get_pending_claims),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings)
):
    """
    Complete a 2FA login

    **Authentication:** the tempToken from /auth/login as Bearer token

    **Request Body:**
    - token: 6-digit TOTP code, or a backup code
    - useBackupCode: true when `token` is a backup code

    **Errors:**
    - 400: 2FA not enabled
    - 401: Invalid code
    - 500: Stored 2FA secret unreadable
    """
    try:
        result = auth_service.verify_mfa_and_login(
            user_id=claims.user_id,
            code=request_data.token,
            use_backup_code=request_data.use_backup_code
        )
    except AuthError as e:
        return two_factor_error_response(e)

    set_refresh_cookie(response, settings, result.tokens.refresh_token)

    return TwoFactorLoginResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.tokens.access_token,
        backup_codes_remaining=result.second_factor.backup_codes_remaining
    )


@router.post("/verify-2fa", response_model=TwoFactorVerifyResponse, response_model_exclude_none=True)
def verify_two_factor(
    request_data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    mfa_service: MfaService = Depends(get_mfa_service)
):
    """
    Step-up check of a 2FA code for an already logged-in user

    A backup code submitted here is spent just like at login. Deactivated
    accounts are refused even while their access token is unexpired.
    """
    try:
        result = mfa_service.verify_second_factor(
            current_user.id,
            request_data.token,
            use_backup_code=request_data.use_backup_code
        )
    except AuthError as e:
        return two_factor_error_response(e)

    return TwoFactorVerifyResponse(backup_codes_remaining=result.backup_codes_remaining)


@router.post("/refresh", response_model=TokenRefreshResponse)
def refresh_token(
    response: Response,
    request_data: Optional[RefreshRequest] = None,
    cookie_token: Optional[str] = Depends(get_refresh_token),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings)
):
    """
    Rotate the refresh token and issue a new access token

    **Input:** refreshToken cookie, or `refreshToken` in the body

    **Errors:**
    - 401: Missing, invalid, expired or revoked refresh token
    """
    token = cookie_token or (request_data.refresh_token if request_data else None)
    if not token:
        raise InvalidRefreshTokenError("Refresh token required")

    tokens = auth_service.refresh(token)
    set_refresh_cookie(response, settings, tokens.refresh_token)

    return TokenRefreshResponse(access_token=tokens.access_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    refresh_token_value: Optional[str] = Depends(get_refresh_token),
    claims: TokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings)
):
    """
    Logout: revoke the refresh token (when revocation is configured) and
    clear the cookie
    """
    auth_service.logout(refresh_token_value)

    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict"
    )

    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)):
    """Current user's profile"""
    return MeResponse(user=UserResponse.model_validate(current_user))


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    request_data: ChangePasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Change the caller's password

    **Errors:**
    - 400: New password too weak
    - 401: Current password is incorrect
    """
    auth_service.change_password(
        user_id=claims.user_id,
        old_password=request_data.old_password,
        new_password=request_data.new_password
    )

    return MessageResponse(message="Password changed successfully")
