"""
Read-through response cache for GET routes.

On a hit the cached JSON body is returned and the route handler does not
run. On a miss the handler runs, and a 200 JSON response is copied into the
cache by a detached task, so the write never delays the response.
"""

import logging
from typing import Callable, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .background import BackgroundWriter
from .client import CacheStore
from .keys import CacheKeyPrefix, derive_cache_key, is_cacheable_path

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"
DEFAULT_CACHED_PREFIXES = (CacheKeyPrefix.TRAVEL_DATA,)


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.startswith("application/json")


class ReadThroughCacheMiddleware(BaseHTTPMiddleware):
    """
    Serve repeated GET requests from the cache store.

    Args:
        app: Wrapped ASGI application
        store: Fail-soft cache store
        writer: Dispatcher for the detached cache writes
        ttl: Seconds a captured response stays cached
        prefixes: Route prefixes whose responses are cached
        authorize: Optional check a request must pass before a hit is served;
            requests failing it go straight to the handler
    """

    def __init__(
        self,
        app: ASGIApp,
        store: CacheStore,
        writer: BackgroundWriter,
        ttl: int = 60,
        prefixes: Iterable[str] = DEFAULT_CACHED_PREFIXES,
        authorize: Optional[Callable[[Request], bool]] = None,
    ):
        super().__init__(app)
        self.store = store
        self.writer = writer
        self.ttl = ttl
        self.prefixes = tuple(prefixes)
        self.authorize = authorize

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method != "GET" or not self.store.is_connected:
            return await call_next(request)
        if not is_cacheable_path(request.url.path, self.prefixes):
            return await call_next(request)
        if self.authorize is not None and not self.authorize(request):
            return await call_next(request)

        cache_key = derive_cache_key(request.url.path, request.query_params.multi_items())

        try:
            cached = await self.store.get(cache_key)
        except Exception as e:
            logger.error(f"Cache lookup failed for {cache_key}: {e}")
            cached = None

        if cached is not None:
            logger.debug(f"Cache hit for key: {cache_key}")
            return Response(
                content=cached,
                status_code=200,
                media_type="application/json",
                headers={CACHE_HEADER: "HIT"},
            )

        logger.debug(f"Cache miss for key: {cache_key}")
        response = await call_next(request)
        if response.status_code != 200 or not _is_json(response):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        captured = Response(
            content=body,
            status_code=response.status_code,
            headers=response.headers,
        )
        captured.headers[CACHE_HEADER] = "MISS"

        self.writer.submit(
            self._store_response(cache_key, body.decode("utf-8")),
            description=f"cache write {cache_key}",
        )
        return captured

    async def _store_response(self, cache_key: str, payload: str) -> None:
        if await self.store.set_with_ttl(cache_key, payload, self.ttl):
            logger.debug(f"Cache set for key: {cache_key}")
