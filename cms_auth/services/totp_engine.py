"""
TOTP Engine - Time-based One-Time Passwords and backup codes

Implements RFC 6238 codes (30 second steps, 6 digits) on top of pyotp,
plus the single-use backup codes that stand in for a lost device.
"""

import base64
import hashlib
import io
from dataclasses import dataclass
from typing import List, Optional, Union

import pyotp
import qrcode

from cms_auth.utils.security import constant_time_compare, generate_backup_codes


TOTP_DIGITS = 6
TOTP_INTERVAL = 30
SECRET_LENGTH = 32
BACKUP_CODE_LENGTH = 8


@dataclass(frozen=True)
class TotpSecret:
    """Freshly generated secret plus the otpauth:// URI to enrol it"""
    secret: str
    enrollment_uri: str


class TotpEngine:
    """Stateless TOTP and backup-code operations"""

    def __init__(self, issuer: str = "CyEyes CMS", valid_window: int = 2, backup_code_count: int = 10):
        self.issuer = issuer
        self.valid_window = valid_window
        self.backup_code_count = backup_code_count

    def generate_secret(self, identity_label: str, issuer_label: Optional[str] = None) -> TotpSecret:
        """
        Generate a new base32 TOTP secret and its enrollment URI

        Args:
            identity_label: Account name shown in the authenticator app (email)
            issuer_label: Issuer shown in the app; defaults to the configured issuer

        Returns:
            TotpSecret
        """
        secret = pyotp.random_base32(length=SECRET_LENGTH)
        issuer = issuer_label or self.issuer

        enrollment_uri = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).provisioning_uri(
            name=identity_label,
            issuer_name=issuer
        )

        return TotpSecret(secret=secret, enrollment_uri=enrollment_uri)

    def generate_qr_code(self, data: str) -> str:
        """
        Generate QR code as data URI

        Args:
            data: Data to encode in QR code

        Returns:
            QR code as data URI (can be used in <img src="">)
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')

        img_base64 = base64.b64encode(buffer.getvalue()).decode()
        return f"data:image/png;base64,{img_base64}"

    def verify_code(self, secret: str, code: str, for_time: Optional[Union[int, float]] = None) -> bool:
        """
        Verify a submitted TOTP code

        Accepts codes from `valid_window` steps either side of now to absorb
        clock drift between the device and the server.

        Args:
            secret: Base32 TOTP secret
            code: Submitted code
            for_time: Unix time to verify at (defaults to now)

        Returns:
            True if the code matches
        """
        code = (code or "").strip()
        if len(code) != TOTP_DIGITS or not code.isdigit():
            return False

        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        if for_time is None:
            return totp.verify(code, valid_window=self.valid_window)
        return totp.verify(code, for_time=for_time, valid_window=self.valid_window)

    def generate_backup_codes(self, count: Optional[int] = None) -> List[str]:
        """Generate `count` random 8-character backup codes"""
        return generate_backup_codes(count=count or self.backup_code_count, length=BACKUP_CODE_LENGTH)

    @staticmethod
    def normalize_backup_code(code: str) -> str:
        """Upper-case and drop separators, so 'abcd-1234' matches 'ABCD1234'"""
        return "".join((code or "").split()).replace("-", "").upper()

    def hash_backup_code(self, code: str) -> str:
        """SHA-256 hex digest of the normalized code"""
        return hashlib.sha256(self.normalize_backup_code(code).encode("utf-8")).hexdigest()

    def verify_backup_code(self, code: str, hashed_codes: List[str]) -> bool:
        """
        Check a backup code against the stored hashes

        Every entry is compared so the time taken does not reveal the
        position of a match.
        """
        if not self.normalize_backup_code(code):
            return False

        hashed_input = self.hash_backup_code(code)
        found = False
        for hashed in hashed_codes:
            if constant_time_compare(hashed_input, hashed):
                found = True
        return found

    def consume_backup_code(self, code: str, hashed_codes: List[str]) -> List[str]:
        """
        Remove one occurrence of a backup code from the stored hashes

        Returns the remaining hashes; the list is returned unchanged if
        the code is not present.
        """
        hashed_input = self.hash_backup_code(code)
        remaining = list(hashed_codes)
        for i, hashed in enumerate(remaining):
            if constant_time_compare(hashed_input, hashed):
                del remaining[i]
                break
        return remaining
