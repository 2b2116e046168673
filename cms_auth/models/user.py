"""
User model and role hierarchy
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from cms_auth.core.database import Base


class UserRole(str, enum.Enum):
    """
    User roles, totally ordered: user < content < admin

    Compare with `satisfies`, never with string equality, so that a
    higher role always passes a check for a lower one.
    """
    USER = "user"
    CONTENT = "content"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]

    def satisfies(self, required: "UserRole") -> bool:
        """True if this role is at least `required`"""
        return self.rank >= UserRole(required).rank


_ROLE_RANKS = {
    UserRole.USER: 1,
    UserRole.CONTENT: 2,
    UserRole.ADMIN: 3,
}


class User(Base):
    """User model - central identity"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=lambda roles: [r.value for r in roles], name="user_role"),
        default=UserRole.USER,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    admin_profile = relationship("AdminProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
