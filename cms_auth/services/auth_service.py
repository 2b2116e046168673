"""
Authentication Service - Login, registration, token refresh
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from cms_auth import metrics
from cms_auth.core.config import Settings
from cms_auth.core.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    UserNotFoundError,
    WeakPasswordError,
)
from cms_auth.core.logging_config import SecurityLogger
from cms_auth.core.redis_client import RedisClient
from cms_auth.models import User, UserRole
from cms_auth.services.jwt_service import REFRESH_TOKEN, JWTService, TokenClaims, TokenPair
from cms_auth.services.mfa_service import MfaService, SecondFactorResult
from cms_auth.utils.security import PasswordHasher, validate_password_strength

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    """
    Outcome of a login step

    Either `tokens` is set (fully authenticated) or `requires_2fa` is True
    and only `pending_token` is set.
    """
    user: User
    requires_2fa: bool = False
    tokens: Optional[TokenPair] = None
    pending_token: Optional[str] = None
    second_factor: Optional[SecondFactorResult] = None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Service for authentication operations"""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        hasher: PasswordHasher,
        jwt_service: JWTService,
        mfa_service: MfaService,
        redis: Optional[RedisClient] = None,
        security_logger: Optional[SecurityLogger] = None
    ):
        self.db = db
        self.settings = settings
        self.hasher = hasher
        self.jwt_service = jwt_service
        self.mfa_service = mfa_service
        self.redis = redis
        self.security_logger = security_logger or SecurityLogger()

    def register_user(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole = UserRole.USER
    ) -> User:
        """
        Register a new user

        Args:
            email: User email
            password: Plain text password
            full_name: User's full name
            role: Initial role

        Returns:
            Created User

        Raises:
            EmailAlreadyRegisteredError: If the email is taken
            WeakPasswordError: If the password fails the strength rules
        """
        email = normalize_email(email)

        # Check if email already exists
        if self.get_user_by_email(email):
            metrics.user_registrations_total.labels(status="email_exists").inc()
            raise EmailAlreadyRegisteredError()

        # Validate password strength
        password_validation = validate_password_strength(password, self.settings.PASSWORD_MIN_LENGTH)
        if not password_validation['valid']:
            metrics.user_registrations_total.labels(status="validation_error").inc()
            raise WeakPasswordError(password_validation['errors'])

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            full_name=full_name,
            role=UserRole(role),
            is_active=True
        )

        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        metrics.user_registrations_total.labels(status="success").inc()
        logger.info("User registered", extra={"user_id": user.id, "role": user.role.value})

        return user

    def login(
        self,
        email: str,
        password: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> LoginResult:
        """
        Authenticate user with email/password

        Unknown email, inactive account and wrong password all raise the
        same error after the same amount of bcrypt work.

        Returns:
            LoginResult with tokens, or with a pending-2FA token if the
            user has two-factor authentication enabled

        Raises:
            InvalidCredentialsError: If authentication fails
        """
        email = normalize_email(email)
        user = self.get_user_by_email(email)

        if not user:
            self.hasher.dummy_verify()
            self._reject_login(email, ip, user_agent)

        password_ok = self.hasher.verify(password, user.password_hash)
        if not password_ok or not user.is_active:
            self._reject_login(email, ip, user_agent)

        if self.hasher.needs_update(user.password_hash):
            user.password_hash = self.hasher.hash(password)
            self.db.commit()

        if self.mfa_service.is_enabled(user.id):
            pending_token = self.jwt_service.issue_pending_2fa_token(self._claims_for(user))
            metrics.auth_login_attempts_total.labels(status="mfa_required").inc()
            self.security_logger.log_two_factor_required(user.id)

            return LoginResult(user=user, requires_2fa=True, pending_token=pending_token)

        tokens = self._complete_login(user)
        metrics.auth_login_attempts_total.labels(status="success").inc()
        self.security_logger.log_successful_login(user.id, user.email)

        return LoginResult(user=user, tokens=tokens)

    def verify_mfa_and_login(self, user_id: str, code: str, use_backup_code: bool = False) -> LoginResult:
        """
        Second login step: check the 2FA code and issue real tokens

        Args:
            user_id: Subject of the pending-2FA token
            code: TOTP code or backup code
            use_backup_code: Treat `code` as a backup code

        Returns:
            LoginResult with tokens

        Raises:
            InvalidCredentialsError: If the user is gone or deactivated
            TwoFactorNotEnabledError / InvalidTOTPCodeError /
            InvalidBackupCodeError / DecryptionError: From MfaService
        """
        user = self.get_user(user_id)
        if not user or not user.is_active:
            raise InvalidCredentialsError()

        result = self.mfa_service.verify_second_factor(user.id, code, use_backup_code=use_backup_code)

        tokens = self._complete_login(user)
        metrics.auth_login_attempts_total.labels(status="success").inc()
        self.security_logger.log_successful_login(user.id, user.email, mfa_verified=True)

        return LoginResult(user=user, tokens=tokens, second_factor=result)

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access/refresh pair

        With Redis configured the presented token is denylisted, so each
        refresh token works once.

        Raises:
            InvalidRefreshTokenError: If the token is invalid, revoked, or
                its user is gone or deactivated
        """
        if not refresh_token:
            raise InvalidRefreshTokenError("Refresh token required")

        try:
            claims = self.jwt_service.verify(refresh_token, token_type=REFRESH_TOKEN)
        except InvalidTokenError:
            metrics.auth_token_operations_total.labels(operation="refresh", status="invalid").inc()
            raise InvalidRefreshTokenError()

        if self.redis and claims.jti and self.redis.is_token_revoked(claims.jti):
            metrics.auth_token_operations_total.labels(operation="refresh", status="revoked").inc()
            self.security_logger.log_refresh_reuse(claims.user_id, claims.jti)
            raise InvalidRefreshTokenError()

        user = self.get_user(claims.user_id)
        if not user or not user.is_active:
            metrics.auth_token_operations_total.labels(operation="refresh", status="invalid").inc()
            raise InvalidRefreshTokenError()

        self._revoke(claims)
        tokens = self.jwt_service.issue_token_pair(self._claims_for(user))
        metrics.auth_token_operations_total.labels(operation="refresh", status="success").inc()

        return tokens

    def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke the refresh token, if there is one and revocation is configured"""
        if not refresh_token or not self.redis:
            return

        try:
            claims = self.jwt_service.verify(refresh_token, token_type=REFRESH_TOKEN)
        except InvalidTokenError:
            # Already unusable
            return

        self._revoke(claims)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """
        Change a user's password

        Raises:
            UserNotFoundError: If the user does not exist
            InvalidCredentialsError: If the old password is wrong
            WeakPasswordError: If the new password fails the strength rules
        """
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError()

        if not self.hasher.verify(old_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        password_validation = validate_password_strength(new_password, self.settings.PASSWORD_MIN_LENGTH)
        if not password_validation['valid']:
            raise WeakPasswordError(password_validation['errors'])

        user.password_hash = self.hasher.hash(new_password)
        self.db.commit()

        self.security_logger.log_password_changed(user.id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def update_role(self, user_id: str, role: UserRole) -> User:
        """Change a user's role (admin operation)"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError()

        old_role = user.role
        user.role = UserRole(role)
        self.db.commit()
        self.db.refresh(user)

        self.security_logger.log_role_changed(user.id, UserRole(old_role).value, user.role.value)
        return user

    def set_active(self, user_id: str, is_active: bool) -> User:
        """Activate or deactivate a user (admin operation)"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError()

        user.is_active = is_active
        self.db.commit()
        self.db.refresh(user)

        logger.info("User status changed", extra={"user_id": user.id, "is_active": is_active})
        return user

    def update_profile(
        self,
        user_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None
    ) -> User:
        """
        Update a user's name and/or email

        Fields left as None are unchanged. A new email must not belong to
        another account.

        Raises:
            UserNotFoundError: If the user does not exist
            EmailAlreadyRegisteredError: If another user has the email
        """
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError()

        if full_name:
            user.full_name = full_name

        if email:
            email = normalize_email(email)
            existing = self.get_user_by_email(email)
            if existing and existing.id != user.id:
                raise EmailAlreadyRegisteredError("Email already in use")
            user.email = email

        self.db.commit()
        self.db.refresh(user)

        logger.info("User profile updated", extra={"user_id": user.id})
        return user

    def delete_user(self, user_id: str) -> None:
        """
        Delete a user and their 2FA profile (admin operation)

        Tokens already issued stay signed but stop resolving to a user.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError()

        self.db.delete(user)
        self.db.commit()

        self.security_logger.log_user_deleted(user_id)

    def _claims_for(self, user: User) -> TokenClaims:
        return TokenClaims(user_id=user.id, email=user.email, role=UserRole(user.role))

    def _complete_login(self, user: User) -> TokenPair:
        tokens = self.jwt_service.issue_token_pair(self._claims_for(user))
        metrics.auth_token_operations_total.labels(operation="issue", status="success").inc()

        self._record_login(user)
        return tokens

    def _record_login(self, user: User) -> None:
        user.last_login = datetime.utcnow()
        self.db.commit()

    def _revoke(self, claims: TokenClaims) -> None:
        if not self.redis or not claims.jti:
            return

        self.redis.revoke_token(claims.jti, claims.seconds_until_expiry())
        metrics.auth_token_operations_total.labels(operation="revoke", status="success").inc()

    def _reject_login(self, email: str, ip: Optional[str], user_agent: Optional[str]) -> None:
        metrics.auth_login_attempts_total.labels(status="invalid_credentials").inc()
        self.security_logger.log_failed_login(email, ip=ip, user_agent=user_agent)
        raise InvalidCredentialsError()
