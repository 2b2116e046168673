"""
AdminProfile model - per-user two-factor authentication state
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from cms_auth.core.database import Base


class AdminProfile(Base):
    """
    2FA settings, one row per user

    `two_factor_secret` and `two_factor_backup_codes` only ever hold
    SecretCipher payloads ("iv:ciphertext"); the backup-code payload
    decrypts to a JSON array of SHA-256 hashes.
    """
    __tablename__ = "admin_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    two_factor_enabled = Column(Boolean, default=False, nullable=False)
    two_factor_secret = Column(Text, nullable=True)
    two_factor_backup_codes = Column(Text, nullable=True)
    enabled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="admin_profile")

    def __repr__(self):
        return f"<AdminProfile(user_id={self.user_id}, two_factor_enabled={self.two_factor_enabled})>"
