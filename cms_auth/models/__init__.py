"""
Database models
"""

from cms_auth.models.user import User, UserRole
from cms_auth.models.admin_profile import AdminProfile

__all__ = [
    "User",
    "UserRole",
    "AdminProfile",
]
