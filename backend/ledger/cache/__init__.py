"""
Response caching layer.

This package contains the Valkey store adapter, cache key derivation, the
read-through middleware for GET routes and the invalidation gateway used by
mutation handlers.
"""

from .config import CacheConfig, CacheConnectionError, CacheConfigurationError
from .client import CacheStore, CacheState, create_valkey_client
from .keys import (
    CacheKeyPrefix,
    derive_cache_key,
    cache_pattern,
    escape_glob,
    normalize_path,
    is_cacheable_path,
)
from .background import BackgroundWriter
from .invalidation import CacheInvalidator
from .middleware import ReadThroughCacheMiddleware, CACHE_HEADER

__all__ = [
    # Configuration
    "CacheConfig",
    "CacheConnectionError",
    "CacheConfigurationError",

    # Store
    "CacheStore",
    "CacheState",
    "create_valkey_client",

    # Keys
    "CacheKeyPrefix",
    "derive_cache_key",
    "cache_pattern",
    "escape_glob",
    "normalize_path",
    "is_cacheable_path",

    # Request path
    "BackgroundWriter",
    "CacheInvalidator",
    "ReadThroughCacheMiddleware",
    "CACHE_HEADER",
]
