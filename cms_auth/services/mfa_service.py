"""
MFA Service - TOTP two-factor authentication state per user

Owns the AdminProfile row: enrolment, enabling, disabling, backup-code
regeneration and second-factor verification. TOTP secrets and backup-code
bundles are encrypted with SecretCipher before they reach the database.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from cms_auth import metrics
from cms_auth.core.exceptions import (
    DecryptionError,
    InvalidBackupCodeError,
    InvalidCredentialsError,
    InvalidEnrollmentCodeError,
    InvalidTOTPCodeError,
    NoBackupCodesError,
    TwoFactorAlreadyEnabledError,
    TwoFactorNotEnabledError,
    TwoFactorSetupRequiredError,
)
from cms_auth.core.logging_config import SecurityLogger
from cms_auth.models import AdminProfile, User
from cms_auth.services.totp_engine import TotpEngine, TotpSecret
from cms_auth.utils.crypto import SecretCipher
from cms_auth.utils.security import PasswordHasher

logger = logging.getLogger(__name__)

METHOD_TOTP = "totp"
METHOD_BACKUP_CODE = "backup_code"

# Compare-and-swap attempts before giving up on a contended backup-code bundle
BACKUP_CODE_SWAP_ATTEMPTS = 3


@dataclass(frozen=True)
class SecondFactorResult:
    method: str
    backup_codes_remaining: Optional[int] = None


class MfaService:
    """Service for 2FA/TOTP operations"""

    def __init__(
        self,
        db: Session,
        cipher: SecretCipher,
        totp: TotpEngine,
        hasher: PasswordHasher,
        security_logger: Optional[SecurityLogger] = None
    ):
        self.db = db
        self.cipher = cipher
        self.totp = totp
        self.hasher = hasher
        self.security_logger = security_logger or SecurityLogger()

    def get_profile(self, user_id: str) -> Optional[AdminProfile]:
        return self.db.query(AdminProfile).filter(AdminProfile.user_id == user_id).first()

    def is_enabled(self, user_id: str) -> bool:
        """True if the user must pass a second factor at login"""
        profile = self.get_profile(user_id)
        return bool(profile and profile.two_factor_enabled)

    def setup(self, user: User) -> Tuple[TotpSecret, str]:
        """
        Start TOTP enrolment

        Generates a secret and stores it encrypted with 2FA still disabled;
        `enable` activates it once the user proves the device works.

        Args:
            user: User object

        Returns:
            Tuple of (TotpSecret, qr_code_data_uri)

        Raises:
            TwoFactorAlreadyEnabledError: If 2FA is already on
        """
        profile = self.get_profile(user.id)
        if profile and profile.two_factor_enabled:
            raise TwoFactorAlreadyEnabledError()

        totp_secret = self.totp.generate_secret(user.email)
        qr_code = self.totp.generate_qr_code(totp_secret.enrollment_uri)
        encrypted_secret = self.cipher.encrypt(totp_secret.secret)

        if profile:
            profile.two_factor_secret = encrypted_secret
            profile.two_factor_backup_codes = None
        else:
            profile = AdminProfile(
                user_id=user.id,
                two_factor_enabled=False,
                two_factor_secret=encrypted_secret,
            )
            self.db.add(profile)

        self.db.commit()
        logger.info("2FA setup started", extra={"user_id": user.id})

        return totp_secret, qr_code

    def enable(self, user: User, code: str) -> List[str]:
        """
        Confirm enrolment and turn 2FA on

        Args:
            user: User object
            code: 6-digit code from the authenticator app

        Returns:
            Plaintext backup codes (shown to the user once, never stored)

        Raises:
            TwoFactorAlreadyEnabledError: If 2FA is already on
            TwoFactorSetupRequiredError: If setup was not called first
            InvalidEnrollmentCodeError: If the code does not match
        """
        profile = self.get_profile(user.id)
        if profile and profile.two_factor_enabled:
            raise TwoFactorAlreadyEnabledError()
        if not profile or not profile.two_factor_secret:
            raise TwoFactorSetupRequiredError()

        secret = self.cipher.decrypt(profile.two_factor_secret)
        if not self.totp.verify_code(secret, code):
            raise InvalidEnrollmentCodeError()

        backup_codes = self.totp.generate_backup_codes()
        profile.two_factor_backup_codes = self._encrypt_backup_codes(
            [self.totp.hash_backup_code(c) for c in backup_codes]
        )
        profile.two_factor_enabled = True
        profile.enabled_at = datetime.utcnow()
        self.db.commit()

        self.security_logger.log_two_factor_changed(user.id, "enabled")
        return backup_codes

    def disable(self, user: User, password: str) -> None:
        """
        Turn 2FA off and wipe the stored secret and codes

        Raises:
            InvalidCredentialsError: If the password is wrong
            TwoFactorNotEnabledError: If 2FA is not on
        """
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError("Incorrect password")

        profile = self.get_profile(user.id)
        if not profile or not profile.two_factor_enabled:
            raise TwoFactorNotEnabledError()

        profile.two_factor_enabled = False
        profile.two_factor_secret = None
        profile.two_factor_backup_codes = None
        profile.enabled_at = None
        self.db.commit()

        self.security_logger.log_two_factor_changed(user.id, "disabled")

    def regenerate_backup_codes(self, user: User, password: str) -> List[str]:
        """
        Replace the whole backup-code set

        Raises:
            InvalidCredentialsError: If the password is wrong
            TwoFactorNotEnabledError: If 2FA is not on
        """
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError("Incorrect password")

        profile = self.get_profile(user.id)
        if not profile or not profile.two_factor_enabled:
            raise TwoFactorNotEnabledError()

        backup_codes = self.totp.generate_backup_codes()
        profile.two_factor_backup_codes = self._encrypt_backup_codes(
            [self.totp.hash_backup_code(c) for c in backup_codes]
        )
        self.db.commit()

        self.security_logger.log_two_factor_changed(user.id, "backup_codes_regenerated")
        return backup_codes

    def get_status(self, user: User) -> dict:
        """
        Get 2FA status for user

        Returns:
            Dictionary with two_factor_enabled, backup_codes_remaining, enabled_at
        """
        profile = self.get_profile(user.id)
        if not profile or not profile.two_factor_enabled:
            return {
                "two_factor_enabled": False,
                "backup_codes_remaining": 0,
                "enabled_at": None,
            }

        return {
            "two_factor_enabled": True,
            "backup_codes_remaining": len(self._load_backup_codes(profile)),
            "enabled_at": profile.enabled_at,
        }

    def verify_second_factor(self, user_id: str, code: str, use_backup_code: bool = False) -> SecondFactorResult:
        """
        Verify a TOTP code or spend a backup code

        Args:
            user_id: User being verified
            code: TOTP code or backup code
            use_backup_code: Treat `code` as a backup code

        Returns:
            SecondFactorResult

        Raises:
            TwoFactorNotEnabledError: No enabled 2FA profile
            InvalidTOTPCodeError / InvalidBackupCodeError: Code rejected
            NoBackupCodesError: Backup code requested but none are left
            DecryptionError: Stored material unreadable
        """
        method = METHOD_BACKUP_CODE if use_backup_code else METHOD_TOTP

        profile = self.get_profile(user_id)
        if not profile or not profile.two_factor_enabled:
            metrics.auth_mfa_verifications_total.labels(method=method, status="not_enabled").inc()
            raise TwoFactorNotEnabledError()

        try:
            if use_backup_code:
                remaining = self._consume_backup_code(profile, code)
            else:
                self._verify_totp(profile, code)
                remaining = None
        except DecryptionError:
            metrics.auth_mfa_verifications_total.labels(method=method, status="unreadable").inc()
            logger.error("Stored 2FA material could not be decrypted", extra={"user_id": user_id})
            raise
        except (InvalidTOTPCodeError, InvalidBackupCodeError):
            metrics.auth_mfa_verifications_total.labels(method=method, status="invalid_code").inc()
            self.security_logger.log_two_factor_failed(user_id, method)
            raise

        metrics.auth_mfa_verifications_total.labels(method=method, status="success").inc()
        return SecondFactorResult(method=method, backup_codes_remaining=remaining)

    def _verify_totp(self, profile: AdminProfile, code: str) -> None:
        if not profile.two_factor_secret:
            raise DecryptionError("2FA secret not found")

        secret = self.cipher.decrypt(profile.two_factor_secret)
        if not self.totp.verify_code(secret, code):
            raise InvalidTOTPCodeError()

    def _consume_backup_code(self, profile: AdminProfile, code: str) -> int:
        """
        Verify and remove a backup code as one step

        The new bundle is written only if the stored bundle is still the one
        that was verified against; a concurrent consumer changes the stored
        ciphertext (fresh IV), so the loser re-reads and re-verifies.

        Returns:
            Number of backup codes left
        """
        for _ in range(BACKUP_CODE_SWAP_ATTEMPTS):
            previous_blob = profile.two_factor_backup_codes
            if not previous_blob:
                raise NoBackupCodesError()

            hashed_codes = self._load_backup_codes(profile)
            if not hashed_codes:
                raise NoBackupCodesError()
            if not self.totp.verify_backup_code(code, hashed_codes):
                raise InvalidBackupCodeError()

            remaining = self.totp.consume_backup_code(code, hashed_codes)
            updated = self.db.query(AdminProfile).filter(
                AdminProfile.id == profile.id,
                AdminProfile.two_factor_backup_codes == previous_blob
            ).update(
                {AdminProfile.two_factor_backup_codes: self._encrypt_backup_codes(remaining)},
                synchronize_session=False
            )
            self.db.commit()

            if updated == 1:
                metrics.auth_backup_codes_consumed_total.inc()
                self.security_logger.log_backup_code_used(profile.user_id, len(remaining))
                return len(remaining)

            logger.warning("Backup code bundle changed concurrently, retrying", extra={"user_id": profile.user_id})
            self.db.refresh(profile)

        raise InvalidBackupCodeError()

    def _load_backup_codes(self, profile: AdminProfile) -> List[str]:
        if not profile.two_factor_backup_codes:
            return []

        plaintext = self.cipher.decrypt(profile.two_factor_backup_codes)
        try:
            hashed_codes = json.loads(plaintext)
        except ValueError:
            raise DecryptionError("Backup code bundle is corrupted")

        if not isinstance(hashed_codes, list):
            raise DecryptionError("Backup code bundle is corrupted")
        return hashed_codes

    def _encrypt_backup_codes(self, hashed_codes: List[str]) -> str:
        return self.cipher.encrypt(json.dumps(hashed_codes))
