"""FastAPI application factory.

:func:`create_app` wires one :class:`~aquamarket.service.Services` container
to the app.  The lifespan opens the database on startup; on shutdown it
waits for in-flight audit/notification writes and closes the connection.

Every request gets a short correlation id, taken from an incoming
``X-Request-Id`` header or generated, stored in
:data:`~aquamarket.core.logging_config.REQUEST_ID_CTX` for the log filter and
echoed back on the response.

Typical usage::

    from aquamarket.api.app import create_app
    from aquamarket.core.settings import Settings

    app = create_app(Settings())
    # uvicorn.run(app, host=settings.api_host, port=settings.api_port)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from aquamarket.api import admin, routes
from aquamarket.api.errors import register_exception_handlers
from aquamarket.core.clock import Clock
from aquamarket.core.logging_config import REQUEST_ID_CTX
from aquamarket.core.settings import Settings
from aquamarket.service import Services
from aquamarket.storage.database import Database

__all__ = ["create_app", "REQUEST_ID_HEADER"]

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def create_app(settings: Settings, *, clock: Clock | None = None) -> FastAPI:
    """Build the HTTP app for *settings*.

    Args:
        settings: Process configuration (database path, site defaults).
        clock: Time source; tests pass a frozen clock.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        db = await Database.open(settings.database_target)
        services = Services.build(db, settings, clock=clock)
        app.state.services = services
        logger.info("Aquamarket API ready (database=%s)", settings.database_path)
        try:
            yield
        finally:
            await services.dispatcher.drain()
            await db.close()
            logger.info("Aquamarket API stopped")

    app = FastAPI(title="Aquamarket", lifespan=lifespan)

    @app.middleware("http")
    async def request_id(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        token = REQUEST_ID_CTX.set(rid)
        try:
            response = await call_next(request)
        finally:
            REQUEST_ID_CTX.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    register_exception_handlers(app)
    app.include_router(routes.health_router)
    app.include_router(routes.router)
    app.include_router(admin.router)
    return app
