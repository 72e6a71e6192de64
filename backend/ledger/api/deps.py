"""
Application services and FastAPI dependencies.

The cache store, the database and the background writer are created once
per application, held in an ``AppServices`` container on ``app.state`` and
handed to route handlers through ``Depends``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from starlette.requests import HTTPConnection

from ..cache import (
    BackgroundWriter,
    CacheConnectionError,
    CacheInvalidator,
    CacheStore,
)
from ..cache.client import ClientFactory
from ..database import Database, User, UserRepository
from ..utils.config import AppConfig
from ..utils.security import decode_access_token, extract_bearer_token
from .errors import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Long-lived collaborators shared by every request."""

    config: AppConfig
    database: Database
    store: CacheStore
    invalidator: CacheInvalidator
    writer: BackgroundWriter

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        client_factory: Optional[ClientFactory] = None,
    ) -> "AppServices":
        store = CacheStore(config.cache_config(), client_factory=client_factory)
        return cls(
            config=config,
            database=Database(config.database_url, echo=config.database_echo),
            store=store,
            invalidator=CacheInvalidator(store),
            writer=BackgroundWriter(),
        )

    async def open(self) -> None:
        """
        Open the database and connect the cache.

        A cache that cannot be reached leaves the store disconnected; the
        API keeps serving straight from the database.
        """
        await self.database.open()
        if not self.config.cache_enabled:
            logger.info("Response cache disabled by configuration")
            return
        try:
            await self.store.connect()
        except CacheConnectionError as e:
            logger.warning(f"Starting without response cache: {e}")

    async def close(self) -> None:
        await self.writer.drain(timeout=5.0)
        await self.writer.cancel_all()
        await self.store.close()
        await self.database.close()


def get_services(request: HTTPConnection) -> AppServices:
    return request.app.state.services


def has_valid_token(request: Request) -> bool:
    """Cheap check used by the cache middleware before serving a hit."""
    services: AppServices = request.app.state.services
    token = extract_bearer_token(request.headers.get("Authorization"))
    return bool(token) and decode_access_token(token, services.config) is not None


async def get_current_user(
    request: Request,
    services: AppServices = Depends(get_services),
) -> User:
    """
    Resolve the caller from the bearer token.

    Raises:
        AuthenticationError: Missing or invalid token, or unknown user
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise AuthenticationError("Authentication required")

    user_id = decode_access_token(token, services.config)
    if user_id is None:
        raise AuthenticationError("Invalid token")

    async with services.database.session() as session:
        user = await UserRepository(session).get(user_id)
    if user is None:
        raise AuthenticationError("User not found")

    request.state.user_id = user.id
    return user


async def require_active_user(user: User = Depends(get_current_user)) -> User:
    """
    Caller that may write.

    Raises:
        PermissionDeniedError: The account is deactivated
    """
    if not user.is_active:
        raise PermissionDeniedError(
            "Account deactivated",
            code="ACCOUNT_DEACTIVATED",
        )
    return user
