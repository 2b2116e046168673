"""
JWT Token Service - Token generation and validation
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from cms_auth.core.config import Settings
from cms_auth.core.exceptions import ExpiredTokenError, InvalidTokenError
from cms_auth.models.user import UserRole


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
PENDING_2FA_SCOPE = "2fa-pending"


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of an access or refresh token"""
    user_id: str
    email: str
    role: UserRole
    token_type: str = ACCESS_TOKEN
    scope: Optional[str] = None
    jti: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None

    @property
    def is_pending_2fa(self) -> bool:
        return self.scope == PENDING_2FA_SCOPE

    def seconds_until_expiry(self) -> int:
        if self.expires_at is None:
            return 0
        return max(self.expires_at - int(datetime.now(timezone.utc).timestamp()), 0)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class JWTService:
    """Service for JWT token operations (HMAC-signed with the server secret)"""

    def __init__(self, settings: Settings):
        if not settings.JWT_SECRET:
            raise ValueError("JWT_SECRET is required")

        self._secret = settings.JWT_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.access_token_ttl = timedelta(minutes=settings.JWT_ACCESS_TOKEN_TTL_MINUTES)
        self.pending_token_ttl = timedelta(minutes=settings.JWT_PENDING_2FA_TTL_MINUTES)
        self.refresh_token_ttl = timedelta(days=settings.JWT_REFRESH_TOKEN_TTL_DAYS)

    def _encode(
        self,
        claims: TokenClaims,
        token_type: str,
        ttl: timedelta,
        scope: Optional[str] = None
    ) -> str:
        now = datetime.now(timezone.utc)
        expires_at = now + ttl

        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "sub": str(claims.user_id),
            "email": claims.email,
            "role": UserRole(claims.role).value,
            "typ": token_type,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if scope:
            payload["scope"] = scope

        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_access_token(
        self,
        claims: TokenClaims,
        scope: Optional[str] = None,
        ttl: Optional[timedelta] = None
    ) -> str:
        """
        Generate an access token

        Args:
            claims: Identity to embed (user_id, email, role)
            scope: Optional restriction, e.g. PENDING_2FA_SCOPE
            ttl: Override lifetime; pending-2FA tokens default to the short pending TTL

        Returns:
            JWT access token
        """
        if ttl is None:
            ttl = self.pending_token_ttl if scope == PENDING_2FA_SCOPE else self.access_token_ttl
        return self._encode(claims, ACCESS_TOKEN, ttl, scope=scope)

    def issue_pending_2fa_token(self, claims: TokenClaims) -> str:
        """Access token that only authorizes the 2FA login verification step"""
        return self.issue_access_token(claims, scope=PENDING_2FA_SCOPE)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        """
        Generate a refresh token

        Each refresh token carries a unique `jti` so it can be denylisted
        after rotation or logout.
        """
        return self._encode(claims, REFRESH_TOKEN, self.refresh_token_ttl)

    def issue_token_pair(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(claims),
            refresh_token=self.issue_refresh_token(claims),
        )

    def verify(self, token: str, token_type: str = ACCESS_TOKEN) -> TokenClaims:
        """
        Validate and decode a JWT token

        Args:
            token: JWT token to validate
            token_type: Expected type ('access' or 'refresh')

        Returns:
            Decoded token claims

        Raises:
            ExpiredTokenError: If the token has expired
            InvalidTokenError: For any other failure (signature, format, type, claims)
        """
        if not token:
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require_exp": True, "require_sub": True, "require_iat": True},
            )
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError:
            raise InvalidTokenError()

        if payload.get("typ") != token_type:
            raise InvalidTokenError("Invalid token type")

        try:
            role = UserRole(payload["role"])
            email = payload["email"]
        except (KeyError, ValueError):
            raise InvalidTokenError("Token is missing required claims")

        return TokenClaims(
            user_id=payload["sub"],
            email=email,
            role=role,
            token_type=payload["typ"],
            scope=payload.get("scope"),
            jti=payload.get("jti"),
            issued_at=payload.get("iat"),
            expires_at=payload.get("exp"),
        )
