"""
Redis connection and refresh-token revocation list
"""

from typing import Optional

from redis import ConnectionPool, Redis


class RedisClient:
    """Redis client wrapper for the refresh-token denylist"""

    KEY_PREFIX = "revoked_jti:"

    def __init__(self, url: str, pool_size: int = 10):
        self.pool = ConnectionPool.from_url(
            url,
            max_connections=pool_size,
            decode_responses=True
        )
        self.client = Redis(connection_pool=self.pool)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value with optional TTL (seconds)"""
        return self.client.set(key, value, ex=ttl)

    def exists(self, key: str) -> bool:
        """Check if key exists"""
        return self.client.exists(key) > 0

    def revoke_token(self, jti: str, ttl: int) -> bool:
        """
        Denylist a token id until it would have expired anyway

        Args:
            jti: Token ID
            ttl: Seconds until the token's own `exp`

        Returns:
            True if stored
        """
        return self.set(f"{self.KEY_PREFIX}{jti}", "1", ttl=max(int(ttl), 1))

    def is_token_revoked(self, jti: str) -> bool:
        """Check whether a token id has been denylisted"""
        return self.exists(f"{self.KEY_PREFIX}{jti}")

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        """Close connection pool"""
        self.pool.disconnect()
