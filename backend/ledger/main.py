"""
FastAPI application for the ledger back office.

``create_app`` wires the routers, the exception handlers and the middleware
stack (CORS, request ids and the read-through response cache) around one
``AppServices`` container.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__
from .api import errors, health, travel_data, upload_sessions
from .api.deps import AppServices, has_valid_token
from .cache import ReadThroughCacheMiddleware
from .cache.client import ClientFactory
from .utils.config import AppConfig, load_config
from .utils.logging_config import request_id_var

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, echoed back in X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


def create_app(
    config: Optional[AppConfig] = None,
    services: Optional[AppServices] = None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Configuration, loaded from the environment when omitted
        services: Pre-built services container, mainly for tests
        client_factory: Cache client factory passed to the store
    """
    if services is None:
        config = config or load_config()
        services = AppServices.from_config(config, client_factory=client_factory)
    config = services.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting ledger API v{__version__}")
        await services.open()
        logger.info(f"Cache store: {services.store.state.value}")
        yield
        logger.info("Shutting down ledger API")
        await services.close()

    app = FastAPI(
        title="Travel Ledger API",
        description="Ledger uploads, travel data editing and cached session listings",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    errors.register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(travel_data.router)
    app.include_router(upload_sessions.router)

    # Innermost first: the cache sits closest to the routes
    app.add_middleware(
        ReadThroughCacheMiddleware,
        store=services.store,
        writer=services.writer,
        ttl=services.store.config.default_ttl,
        authorize=has_valid_token,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Cache"],
    )

    return app
