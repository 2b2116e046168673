"""
Security utilities for password hashing, validation, and backup code generation
"""

import re
import secrets
import string
from typing import List, Optional

from passlib.context import CryptContext

from cms_auth.core.exceptions import PasswordHashError


BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


class PasswordHasher:
    """
    bcrypt password hashing with a configurable work factor

    Hashes created with a lower cost than the configured one still verify;
    `needs_update` reports them so callers can rehash on next login.
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            bcrypt__min_rounds=rounds
        )
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        return self.context.hash(password)

    def verify(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash

        Args:
            password: Plain text password to verify
            hashed_password: Hashed password to check against

        Returns:
            True if password matches, False otherwise

        Raises:
            PasswordHashError: If the stored hash is malformed
        """
        try:
            return self.context.verify(password, hashed_password)
        except (ValueError, TypeError) as e:
            raise PasswordHashError(f"Stored password hash is unusable: {type(e).__name__}") from e

    def needs_update(self, hashed_password: str) -> bool:
        """True if the hash was made with a weaker cost than configured"""
        return self.context.needs_update(hashed_password)

    def dummy_verify(self) -> None:
        """Spend one verify so unknown emails take as long as wrong passwords"""
        if self._dummy_hash is None:
            self._dummy_hash = self.context.hash(secrets.token_urlsafe(16))
        self.context.verify("not-the-password", self._dummy_hash)


def validate_password_strength(password: str, min_length: int = 8) -> dict:
    """
    Validate password strength using complexity rules

    Args:
        password: Password to validate
        min_length: Minimum accepted length

    Returns:
        dict with 'valid' (bool) and 'errors' (list) keys
    """
    errors = []

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters long")

    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        errors.append("Password must contain at least one number")

    if not re.search(r'[^A-Za-z0-9]', password):
        errors.append("Password must contain at least one special character")

    return {
        'valid': len(errors) == 0,
        'errors': errors,
    }


def generate_backup_codes(count: int = 10, length: int = 8) -> List[str]:
    """
    Generate backup codes for MFA

    Args:
        count: Number of backup codes to generate
        length: Length of each backup code

    Returns:
        List of upper-case alphanumeric codes
    """
    return [
        ''.join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        for _ in range(count)
    ]


def mask_email(email: str) -> str:
    """
    Mask email address for logging

    Args:
        email: Email address to mask

    Returns:
        Masked email (e.g., u***r@example.com)
    """
    if not email or '@' not in email:
        return email

    local, domain = email.split('@', 1)
    if len(local) <= 2:
        masked_local = '*' * len(local)
    else:
        masked_local = f"{local[0]}***{local[-1]}"

    return f"{masked_local}@{domain}"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison to prevent timing attacks

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return secrets.compare_digest(a.encode(), b.encode())
