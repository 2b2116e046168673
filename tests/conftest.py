"""
Pytest configuration shared by unit and integration tests.

Every test gets its own in-memory SQLite database and a bcrypt cost of 4
so password hashing stays fast.
"""

import pytest
from sqlalchemy.orm import Session

from cms_auth.core.config import Settings
from cms_auth.core.database import create_db_engine, create_session_factory, init_db
from cms_auth.core.logging_config import SecurityLogger
from cms_auth.models import User, UserRole
from cms_auth.services.auth_service import AuthService
from cms_auth.services.jwt_service import JWTService
from cms_auth.services.mfa_service import MfaService
from cms_auth.services.totp_engine import TotpEngine
from cms_auth.utils.crypto import SecretCipher
from cms_auth.utils.security import PasswordHasher


TEST_PASSWORD = "Str0ng!Pass"


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment and any .env file"""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL="sqlite://",
        REDIS_URL=None,
        JWT_SECRET="test-jwt-secret",
        TWOFA_ENCRYPTION_KEY="test-2fa-encryption-key",
        PASSWORD_BCRYPT_COST=4,
        LOG_FORMAT="text",
    )


@pytest.fixture
def db_engine(settings: Settings):
    """Fresh in-memory database per test."""
    engine = create_db_engine(settings)
    init_db(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    session = create_session_factory(db_engine)()

    yield session

    session.close()


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.PASSWORD_BCRYPT_COST)


@pytest.fixture
def cipher(settings: Settings) -> SecretCipher:
    return SecretCipher(settings.TWOFA_ENCRYPTION_KEY, salt=settings.TWOFA_KDF_SALT)


@pytest.fixture
def totp_engine(settings: Settings) -> TotpEngine:
    return TotpEngine(
        issuer=settings.TWOFA_ISSUER,
        valid_window=settings.MFA_TOTP_VALID_WINDOW,
        backup_code_count=settings.MFA_BACKUP_CODE_COUNT
    )


@pytest.fixture
def jwt_service(settings: Settings) -> JWTService:
    return JWTService(settings)


@pytest.fixture
def mfa_service(db_session, cipher, totp_engine, hasher) -> MfaService:
    return MfaService(db_session, cipher=cipher, totp=totp_engine, hasher=hasher, security_logger=SecurityLogger())


@pytest.fixture
def auth_service(db_session, settings, hasher, jwt_service, mfa_service) -> AuthService:
    return AuthService(
        db_session,
        settings=settings,
        hasher=hasher,
        jwt_service=jwt_service,
        mfa_service=mfa_service
    )


@pytest.fixture
def make_user(db_session: Session, hasher: PasswordHasher):
    """Factory for users stored with a real bcrypt hash"""
    def _make_user(
        email: str = "alice@example.com",
        password: str = TEST_PASSWORD,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
        full_name: str = "Test User"
    ) -> User:
        user = User(
            email=email,
            password_hash=hasher.hash(password),
            full_name=full_name,
            role=role,
            is_active=is_active
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user
