#!/usr/bin/env python3
"""
Create the initial admin account

Reads ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME from the environment and
is a no-op if the account already exists.
"""

import os
import sys
from typing import Tuple

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy.orm import Session

from cms_auth.core.config import Settings, get_settings
from cms_auth.core.database import create_db_engine, create_session_factory, init_db
from cms_auth.core.exceptions import WeakPasswordError
from cms_auth.models import User, UserRole
from cms_auth.utils.security import PasswordHasher, validate_password_strength


DEFAULT_ADMIN_EMAIL = "admin@cyeyes.com"
DEFAULT_ADMIN_PASSWORD = "ChangeThisPassword123!"
DEFAULT_ADMIN_NAME = "CyEyes Administrator"


def create_admin(
    db: Session,
    settings: Settings,
    email: str,
    password: str,
    full_name: str
) -> Tuple[User, bool]:
    """
    Create an admin user unless one with this email exists

    Returns:
        Tuple of (User, created)

    Raises:
        WeakPasswordError: If the password fails the strength rules
    """
    email = email.strip().lower()

    existing = db.query(User).filter(User.email == email).first()
    if existing:
        return existing, False

    password_validation = validate_password_strength(password, settings.PASSWORD_MIN_LENGTH)
    if not password_validation['valid']:
        raise WeakPasswordError(password_validation['errors'])

    hasher = PasswordHasher(rounds=settings.PASSWORD_BCRYPT_COST)
    user = User(
        email=email,
        password_hash=hasher.hash(password),
        full_name=full_name,
        role=UserRole.ADMIN,
        is_active=True
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    return user, True


def main():
    """Main function"""
    settings = get_settings()
    email = os.environ.get("ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)
    password = os.environ.get("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
    full_name = os.environ.get("ADMIN_NAME", DEFAULT_ADMIN_NAME)

    print("=" * 60)
    print("Admin Account Setup")
    print("=" * 60)
    print()

    engine = create_db_engine(settings)
    init_db(engine)
    db = create_session_factory(engine)()

    try:
        user, created = create_admin(db, settings, email, password, full_name)
    except WeakPasswordError as e:
        db.rollback()
        print(f"✗ {e}")
        sys.exit(1)
    finally:
        db.close()
        engine.dispose()

    if not created:
        print(f"Admin user already exists: {user.email}")
        return

    print(f"✓ Created admin user: {user.email}")
    if password == DEFAULT_ADMIN_PASSWORD:
        print()
        print("WARNING: the default password is in use. Change it immediately.")
    print()


if __name__ == "__main__":
    main()
