"""
Valkey cache configuration.

This module provides the connection and retry settings for the response
cache and a helper that turns them into keyword arguments for the Valkey
client. Values come from ``AppConfig.cache_config()``.
"""

import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """
    Configuration for the Valkey response cache.

    Holds connection pooling settings, the bounded reconnect policy and the
    default TTL applied to cached responses.
    """

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    decode_responses: bool = True

    default_ttl: int = 60
    max_retries: int = 10
    retry_base_delay: float = 0.1
    retry_max_delay: float = 3.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise CacheConfigurationError("max_retries must be at least 1")
        if self.default_ttl <= 0:
            raise CacheConfigurationError("default_ttl must be positive")
        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            raise CacheConfigurationError(
                "retry delays must satisfy 0 <= retry_base_delay <= retry_max_delay"
            )

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before the next connection attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based)

        Returns:
            float: Seconds to wait, doubling per attempt up to retry_max_delay
        """
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    def to_connection_pool_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``valkey.asyncio.ConnectionPool``."""
        kwargs: Dict[str, Any] = dict(
            host=self.host,
            port=self.port,
            db=self.database,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_connect_timeout,
            decode_responses=self.decode_responses,
        )
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __str__(self) -> str:
        # Never print the password
        return (
            f"CacheConfig(host={self.host}, port={self.port}, db={self.database}, "
            f"password={'***' if self.password else 'None'}, "
            f"ttl={self.default_ttl}s, max_retries={self.max_retries})"
        )


class CacheConnectionError(Exception):
    """Raised when the cache cannot be reached after the retry budget."""
    pass


class CacheConfigurationError(Exception):
    """Raised for invalid cache settings."""
    pass
