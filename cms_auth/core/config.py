"""
Configuration management for cms_auth
Uses pydantic-settings for environment variable loading and validation
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "change-this-secret-key"
DEFAULT_TWOFA_ENCRYPTION_KEY = "cyeyes-cms-2fa-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "cms_auth"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # API
    API_PREFIX: str = "/api"

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./cms.db")
    DATABASE_ECHO: bool = Field(default=False)

    # Redis (optional; enables refresh-token revocation)
    REDIS_URL: Optional[str] = Field(default=None)
    REDIS_POOL_SIZE: int = Field(default=10)

    # JWT
    JWT_SECRET: str = Field(default=DEFAULT_JWT_SECRET)
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ISSUER: str = Field(default="cms_auth")
    JWT_ACCESS_TOKEN_TTL_MINUTES: int = Field(default=15)
    JWT_PENDING_2FA_TTL_MINUTES: int = Field(default=5)
    JWT_REFRESH_TOKEN_TTL_DAYS: int = Field(default=30)

    # Two-factor authentication
    TWOFA_ENCRYPTION_KEY: str = Field(default=DEFAULT_TWOFA_ENCRYPTION_KEY)
    TWOFA_KDF_SALT: str = Field(default="salt")
    TWOFA_ISSUER: str = Field(default="CyEyes CMS")
    MFA_TOTP_VALID_WINDOW: int = Field(default=2)
    MFA_BACKUP_CODE_COUNT: int = Field(default=10)

    # Security
    PASSWORD_MIN_LENGTH: int = Field(default=8)
    PASSWORD_BCRYPT_COST: int = Field(default=12)
    ACCESS_COOKIE_NAME: str = Field(default="accessToken")
    REFRESH_COOKIE_NAME: str = Field(default="refreshToken")
    COOKIE_SECURE: Optional[bool] = Field(default=None)

    # CORS
    CORS_ALLOWED_ORIGINS: str = Field(default="http://localhost:5173")  # comma-separated
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # 'json' or 'text'

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("PASSWORD_BCRYPT_COST")
    @classmethod
    def validate_bcrypt_cost(cls, v):
        """bcrypt accepts work factors 4..31"""
        if not 4 <= v <= 31:
            raise ValueError("PASSWORD_BCRYPT_COST must be between 4 and 31")
        return v

    @model_validator(mode="after")
    def refuse_default_secrets_in_production(self):
        """Default signing secret and 2FA key are only acceptable outside production"""
        if self.is_production:
            if self.JWT_SECRET == DEFAULT_JWT_SECRET:
                raise ValueError("JWT_SECRET must be set in production environment")
            if self.TWOFA_ENCRYPTION_KEY == DEFAULT_TWOFA_ENCRYPTION_KEY:
                raise ValueError("TWOFA_ENCRYPTION_KEY must be set in production environment")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        """Cookies are `secure` in production unless explicitly overridden"""
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return self.is_production

    @property
    def cors_origins(self) -> List[str]:
        """Parse comma-separated origins to list"""
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def refresh_token_max_age(self) -> int:
        return self.JWT_REFRESH_TOKEN_TTL_DAYS * 86400


@lru_cache()
def get_settings() -> Settings:
    """Settings read from the process environment, built once"""
    return Settings()
