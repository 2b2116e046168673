"""
Exception taxonomy for the authentication subsystem

Services raise these; the HTTP layer turns them into `{error}` or
`{success: false, message}` bodies using `status_code`.
"""

from typing import List, Optional


class AuthError(Exception):
    """Base class for expected, user-facing authentication failures"""

    status_code = 400
    default_message = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentialsError(AuthError):
    """Unknown email, inactive account or wrong password (deliberately indistinguishable)"""

    status_code = 401
    default_message = "Invalid email or password"


class UnauthenticatedError(AuthError):
    status_code = 401
    default_message = "Authentication required"


class InvalidTokenError(AuthError):
    """Signature, format, type or claim failure of a JWT"""

    status_code = 401
    default_message = "Invalid or expired token"


class ExpiredTokenError(InvalidTokenError):
    default_message = "Token has expired"


class InvalidRefreshTokenError(AuthError):
    status_code = 401
    default_message = "Invalid or expired refresh token"


class PendingTwoFactorError(AuthError):
    """A pending-2FA token was presented to an endpoint that needs full authentication"""

    status_code = 401
    default_message = "Two-factor verification required"


class TwoFactorNotEnabledError(AuthError):
    status_code = 400
    default_message = "2FA not enabled"


class TwoFactorAlreadyEnabledError(AuthError):
    status_code = 400
    default_message = "2FA is already enabled. Disable it first to re-enroll."


class TwoFactorSetupRequiredError(AuthError):
    status_code = 400
    default_message = "No 2FA setup in progress. Call setup first."


class InvalidTOTPCodeError(AuthError):
    status_code = 401
    default_message = "Invalid verification code"


class InvalidEnrollmentCodeError(InvalidTOTPCodeError):
    """Wrong code while confirming 2FA setup (a validation failure, not a login failure)"""

    status_code = 400


class InvalidBackupCodeError(AuthError):
    status_code = 401
    default_message = "Invalid backup code"


class NoBackupCodesError(InvalidBackupCodeError):
    """2FA is on but there is no unused backup code left to try"""

    status_code = 400
    default_message = "No backup codes available"


class DecryptionError(AuthError):
    """Stored 2FA material is corrupted or was encrypted under another key"""

    status_code = 500
    default_message = "2FA secret unreadable"


class InsufficientRoleError(AuthError):
    status_code = 403
    default_message = "Insufficient permissions"

    def __init__(self, required: List[str], current: str, message: Optional[str] = None):
        self.required = required
        self.current = current
        super().__init__(message)


class OwnershipError(AuthError):
    status_code = 403
    default_message = "You can only access your own resources"


class EmailAlreadyRegisteredError(AuthError):
    status_code = 400
    default_message = "User with this email already exists"


class WeakPasswordError(AuthError):
    status_code = 400
    default_message = "Password does not meet requirements"

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Password validation failed: {', '.join(errors)}")


class UserNotFoundError(AuthError):
    status_code = 404
    default_message = "User not found"


class PasswordHashError(AuthError):
    """Stored password hash could not be parsed; an internal fault, not a login failure"""

    status_code = 500
    default_message = "Internal server error"
