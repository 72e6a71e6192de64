"""
Pattern-based invalidation of cached API responses.

Mutation handlers call into this gateway after a successful write so the
next read of the affected list is served from the database instead of a
stale cache entry.
"""

import logging
from typing import Iterable, Optional

from .client import CacheStore
from .keys import CacheKeyPrefix, cache_pattern

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """Deletes cached responses that a write has made stale."""

    def __init__(self, store: CacheStore):
        self.store = store

    async def invalidate(self, pattern: str) -> int:
        """
        Delete every cache entry matching a glob-style pattern.

        Returns:
            Number of entries removed (0 when the cache is unavailable)
        """
        deleted = await self.store.delete_matching(pattern)
        if deleted:
            logger.info(f"Cache invalidated: {deleted} keys matching {pattern}")
        else:
            logger.debug(f"Cache invalidation matched nothing for {pattern}")
        return deleted

    async def invalidate_session(self, session_id: Optional[str]) -> int:
        """
        Drop the cached list pages of one upload session.

        Records without a session are not addressable by a single list path,
        so a null session clears the whole travel-data namespace.
        """
        if session_id is None:
            return await self.invalidate(
                cache_pattern(CacheKeyPrefix.TRAVEL_DATA.value, include_children=True)
            )
        return await self.invalidate(
            cache_pattern(f"{CacheKeyPrefix.TRAVEL_DATA.value}/{session_id}")
        )

    async def invalidate_sessions(self, session_ids: Iterable[Optional[str]]) -> int:
        """Drop the cached pages of several sessions, each at most once."""
        deleted = 0
        for session_id in dict.fromkeys(session_ids):
            deleted += await self.invalidate_session(session_id)
        return deleted
