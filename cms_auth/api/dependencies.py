"""
API dependencies for authentication and authorization
"""

from typing import Callable, Generator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from cms_auth.core.config import Settings
from cms_auth.core.database import session_scope
from cms_auth.core.exceptions import (
    InsufficientRoleError,
    InvalidTokenError,
    OwnershipError,
    PendingTwoFactorError,
    UnauthenticatedError,
)
from cms_auth.core.logging_config import SecurityLogger
from cms_auth.models import User, UserRole
from cms_auth.services.auth_service import AuthService
from cms_auth.services.authz_service import check_ownership, check_role
from cms_auth.services.jwt_service import JWTService, TokenClaims
from cms_auth.services.mfa_service import MfaService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Generator[Session, None, None]:
    """Database session for one request"""
    yield from session_scope(request.app.state.session_factory)


def get_jwt_service(request: Request) -> JWTService:
    return request.app.state.jwt_service


def get_security_logger(request: Request) -> SecurityLogger:
    return request.app.state.security_logger


def get_mfa_service(
    request: Request,
    db: Session = Depends(get_db)
) -> MfaService:
    """
    Get MFA service instance

    Args:
        request: Current request (shared components live on app.state)
        db: Database session

    Returns:
        MfaService instance
    """
    state = request.app.state
    return MfaService(
        db,
        cipher=state.cipher,
        totp=state.totp_engine,
        hasher=state.hasher,
        security_logger=state.security_logger
    )


def get_auth_service(
    request: Request,
    db: Session = Depends(get_db),
    mfa_service: MfaService = Depends(get_mfa_service)
) -> AuthService:
    """
    Get authentication service instance

    Args:
        request: Current request
        db: Database session
        mfa_service: MFA service sharing the same session

    Returns:
        AuthService instance
    """
    state = request.app.state
    return AuthService(
        db,
        settings=state.settings,
        hasher=state.hasher,
        jwt_service=state.jwt_service,
        mfa_service=mfa_service,
        redis=state.redis,
        security_logger=state.security_logger
    )


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    # Check for X-Forwarded-For header (if behind proxy)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "unknown")


def get_access_token(request: Request) -> Optional[str]:
    """
    Extract the access token

    `Authorization: Bearer <token>` wins; otherwise the access-token cookie.
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    settings = get_settings(request)
    return request.cookies.get(settings.ACCESS_COOKIE_NAME) or None


def get_refresh_token(request: Request) -> Optional[str]:
    """Refresh token from its httpOnly cookie"""
    settings = get_settings(request)
    return request.cookies.get(settings.REFRESH_COOKIE_NAME) or None


def get_token_claims(
    token: Optional[str] = Depends(get_access_token),
    jwt_service: JWTService = Depends(get_jwt_service)
) -> TokenClaims:
    """
    Verified claims of any access token, including pending-2FA ones

    Raises:
        UnauthenticatedError: No token presented
        InvalidTokenError: Token failed verification
    """
    if not token:
        raise UnauthenticatedError()

    return jwt_service.verify(token)


def get_current_claims(
    request: Request,
    claims: TokenClaims = Depends(get_token_claims),
    security_logger: SecurityLogger = Depends(get_security_logger)
) -> TokenClaims:
    """
    Claims of a fully authenticated caller

    Raises:
        PendingTwoFactorError: If the token only proves the password step
    """
    if claims.is_pending_2fa:
        security_logger.log_access_denied(claims.user_id, request.url.path, "pending_2fa_token")
        raise PendingTwoFactorError()

    return claims


def get_pending_claims(claims: TokenClaims = Depends(get_token_claims)) -> TokenClaims:
    """
    Claims of a caller half-way through a 2FA login

    Raises:
        InvalidTokenError: If the token is not a pending-2FA token
    """
    if not claims.is_pending_2fa:
        raise InvalidTokenError("2FA verification token required")

    return claims


def get_current_user(
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from access token

    Raises:
        UnauthenticatedError: If the user no longer exists or is deactivated
    """
    user = db.query(User).filter(User.id == claims.user_id).first()
    if user is None or not user.is_active:
        raise UnauthenticatedError()

    return user


def require_role(*roles: UserRole) -> Callable[..., TokenClaims]:
    """
    Dependency factory to require a minimum role

    The caller passes if their role satisfies any of `roles`
    (user < content < admin).

    Usage:
        @router.patch("/{user_id}/role")
        def update_role(claims: TokenClaims = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    allowed = [UserRole(r) for r in roles]

    def role_checker(
        request: Request,
        claims: TokenClaims = Depends(get_current_claims),
        security_logger: SecurityLogger = Depends(get_security_logger)
    ) -> TokenClaims:
        try:
            check_role(claims.role, allowed)
        except InsufficientRoleError:
            security_logger.log_access_denied(claims.user_id, request.url.path, "insufficient_role")
            raise

        return claims

    return role_checker


def require_ownership(owner_id_from: Callable[[Request], Optional[str]]) -> Callable[..., TokenClaims]:
    """
    Dependency factory to restrict a resource to its owner (admins bypass)

    Args:
        owner_id_from: Extracts the owning user id from the request,
            e.g. `lambda request: request.path_params.get("user_id")`
    """
    def ownership_checker(
        request: Request,
        claims: TokenClaims = Depends(get_current_claims),
        security_logger: SecurityLogger = Depends(get_security_logger)
    ) -> TokenClaims:
        try:
            check_ownership(claims.user_id, claims.role, owner_id_from(request))
        except OwnershipError:
            security_logger.log_access_denied(claims.user_id, request.url.path, "not_owner")
            raise

        return claims

    return ownership_checker
