"""
Valkey store adapter with bounded reconnection and fail-soft operations.

This module wraps an asyncio Valkey client behind the three operations the
response cache needs (get, set with TTL, pattern delete). Every operation
degrades to a cache miss when the server is unreachable, so an outage slows
requests down instead of failing them.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import valkey.asyncio as valkey
from valkey.exceptions import ConnectionError, TimeoutError, ValkeyError

from .config import CacheConfig, CacheConnectionError

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500


class CacheState(str, Enum):
    """Connection state of the cache store."""
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


StateListener = Callable[[CacheState, CacheState], None]
ClientFactory = Callable[[CacheConfig], Any]


def create_valkey_client(config: CacheConfig) -> valkey.Valkey:
    """Build a pooled asyncio Valkey client from configuration."""
    pool = valkey.ConnectionPool(**config.to_connection_pool_kwargs())
    return valkey.Valkey(connection_pool=pool)


class CacheStore:
    """
    Fail-soft key-value store used by the response cache.

    Features:
    - Bounded connection retry with capped exponential backoff
    - Observable connection state (connected / reconnecting / disconnected)
    - Background reconnection after an operation fails
    - Operations that return "absent" instead of raising when unreachable
    """

    def __init__(
        self,
        config: CacheConfig,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Initialize the store without connecting.

        Args:
            config: CacheConfig instance, usually from AppConfig.cache_config()
            client_factory: Callable building the underlying client, used by tests
        """
        self.config = config
        self._client_factory = client_factory or create_valkey_client
        self._client: Optional[Any] = None
        self._state = CacheState.DISCONNECTED
        self._listeners: List[StateListener] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._connection_attempts = 0
        self._closed = False

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the store can currently serve operations."""
        return self._state == CacheState.CONNECTED and self._client is not None

    def add_state_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (old_state, new_state) on transitions."""
        self._listeners.append(listener)

    def _set_state(self, new_state: CacheState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        if new_state == CacheState.CONNECTED:
            logger.info("Valkey connected")
        elif new_state == CacheState.RECONNECTING:
            logger.warning("Valkey reconnecting...")
        else:
            logger.warning("Valkey disconnected")

        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("Cache state listener failed")

    async def connect(self) -> None:
        """
        Establish connection to Valkey with bounded retry.

        Raises:
            CacheConnectionError: If no attempt succeeds within max_retries
        """
        if self.is_connected:
            return

        self._closed = False
        self._connection_attempts = 0

        while True:
            self._connection_attempts += 1
            attempt = self._connection_attempts
            client = None
            try:
                logger.debug(f"Attempting Valkey connection (attempt {attempt})")
                client = self._client_factory(self.config)
                await client.ping()
            except (ConnectionError, TimeoutError, OSError) as e:
                logger.warning(f"Valkey connection attempt {attempt} failed: {e}")
                await self._discard(client)

                if attempt >= self.config.max_retries:
                    self._set_state(CacheState.DISCONNECTED)
                    error_msg = (
                        f"Failed to connect to Valkey after {attempt} attempts. "
                        f"Last error: {e}"
                    )
                    logger.error(error_msg)
                    raise CacheConnectionError(error_msg) from e

                self._set_state(CacheState.RECONNECTING)
                delay = self.config.backoff_delay(attempt)
                logger.debug(f"Retrying Valkey connection in {delay:.2f} seconds")
                await asyncio.sleep(delay)
                continue

            self._client = client
            self._set_state(CacheState.CONNECTED)
            return

    async def close(self) -> None:
        """Stop reconnecting and release the connection pool."""
        self._closed = True

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except (asyncio.CancelledError, CacheConnectionError):
                pass
        self._reconnect_task = None

        client, self._client = self._client, None
        await self._discard(client)
        self._set_state(CacheState.DISCONNECTED)

    async def _discard(self, client: Optional[Any]) -> None:
        if client is None:
            return
        try:
            await client.aclose(close_connection_pool=True)
        except Exception as e:
            logger.debug(f"Error closing Valkey client: {e}")

    def _handle_failure(self, operation: str, error: Exception) -> None:
        """Record an operation failure and start reconnecting if the link is gone."""
        if isinstance(error, (ConnectionError, TimeoutError, OSError)):
            logger.warning(f"Cache {operation} failed, marking store disconnected: {error}")
            self._set_state(CacheState.DISCONNECTED)
            self._schedule_reconnect()
        else:
            logger.warning(f"Cache {operation} failed: {error}")

    def _schedule_reconnect(self) -> None:
        if self._closed:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconnect_task = loop.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        stale, self._client = self._client, None
        await self._discard(stale)
        try:
            await self.connect()
        except CacheConnectionError:
            logger.error("Giving up on Valkey reconnection; cache stays disabled")

    async def get(self, key: str) -> Optional[str]:
        """
        Get a stored value.

        Returns:
            The stored string, or None when absent or the store is unreachable
        """
        if not self.is_connected:
            return None
        try:
            return await self._client.get(key)
        except (ValkeyError, OSError) as e:
            self._handle_failure("get", e)
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        """
        Store a value that expires after ttl_seconds.

        Returns:
            True if the value was written, False otherwise
        """
        if ttl_seconds <= 0:
            logger.warning(f"Refusing to cache {key} with non-positive TTL {ttl_seconds}")
            return False
        if not self.is_connected:
            return False
        try:
            await self._client.set(key, value, ex=ttl_seconds)
            return True
        except (ValkeyError, OSError) as e:
            self._handle_failure("set", e)
            return False

    async def delete_matching(self, pattern: str) -> int:
        """
        Delete all keys matching a glob-style pattern.

        Returns:
            Number of keys removed, 0 when the store is unreachable
        """
        if not self.is_connected:
            return 0
        try:
            deleted = 0
            batch: List[str] = []
            async for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
            return deleted
        except (ValkeyError, OSError) as e:
            self._handle_failure("delete", e)
            return 0

    def get_connection_info(self) -> Dict[str, Any]:
        """Connection information for health reporting."""
        return {
            "state": self._state.value,
            "config": str(self.config),
            "connection_attempts": self._connection_attempts,
        }

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
