"""
Cache key derivation for cached API responses.

Keys have the shape ``cache:<path>:<hash>`` where the hash is the first
8 hex characters of the MD5 of the canonical JSON form of the query
parameters. Query keys are sorted before hashing so that two requests with
the same parameters in a different order share one cache entry.
"""

import hashlib
import json
import re
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

CACHE_NAMESPACE = "cache"
QUERY_HASH_LENGTH = 8

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")
_REPEATED_SLASHES = re.compile(r"/{2,}")


class CacheKeyPrefix(str, Enum):
    """Route prefixes whose GET responses are cached."""

    TRAVEL_DATA = "/api/travel-data"


QueryInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def normalize_path(path: str) -> str:
    """
    Normalize a request path for use in a cache key.

    Collapses repeated slashes and drops a trailing slash, except for the
    root path.
    """
    if not path:
        return "/"
    path = _REPEATED_SLASHES.sub("/", path)
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def canonical_query(query: QueryInput) -> Dict[str, Any]:
    """
    Fold query parameters into a plain dict.

    Accepts a mapping or a sequence of (key, value) pairs, which is what
    Starlette's ``QueryParams.multi_items()`` returns. A key that appears more
    than once becomes a list that keeps the arrival order of its values.
    """
    items = query.items() if isinstance(query, Mapping) else query
    folded: Dict[str, Any] = {}
    for key, value in items:
        if key in folded:
            existing = folded[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                folded[key] = [existing, value]
        else:
            folded[key] = value
    return folded


def hash_query(query: QueryInput) -> str:
    """Short, deterministic digest of the query parameters."""
    data_str = json.dumps(
        canonical_query(query), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.md5(data_str.encode()).hexdigest()[:QUERY_HASH_LENGTH]


def derive_cache_key(path: str, query: QueryInput = ()) -> str:
    """
    Build the cache key for a request.

    Args:
        path: Request path without the query string
        query: Query parameters as a mapping or (key, value) pairs

    Returns:
        str: Key of the form ``cache:<path>:<8 hex chars>``

    Example:
        derive_cache_key("/api/travel-data/s1", {"page": "1", "pageSize": "50"})
        # Returns: "cache:/api/travel-data/s1:<hash>"
    """
    return f"{CACHE_NAMESPACE}:{normalize_path(path)}:{hash_query(query)}"


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so a literal value can sit inside a pattern."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def cache_pattern(path: str, *, include_children: bool = False) -> str:
    """
    Build a pattern matching every cached query variant of a path.

    Args:
        path: Request path whose entries should match
        include_children: Also match entries for paths nested below ``path``

    Example:
        cache_pattern("/api/travel-data/s1")
        # Returns: "cache:/api/travel-data/s1:*"
    """
    literal = escape_glob(normalize_path(path))
    if include_children:
        return f"{CACHE_NAMESPACE}:{literal}*"
    return f"{CACHE_NAMESPACE}:{literal}:*"


def is_cacheable_path(path: str, prefixes: Iterable[str]) -> bool:
    """Check whether a path falls under one of the cached route prefixes."""
    normalized = normalize_path(path)
    for prefix in prefixes:
        prefix = normalize_path(str(prefix.value if isinstance(prefix, Enum) else prefix))
        if normalized == prefix or normalized.startswith(prefix + "/"):
            return True
    return False
