from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from chat_relay.api.middleware.request_context import RequestContextMiddleware
from chat_relay.api.v1.routers import (
    conversations,
    health,
    messages,
    users,
    ws,
)
from chat_relay.application.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from chat_relay.config import settings
from chat_relay.infrastructure.bus.redis_notifications import RedisNotificationQueue
from chat_relay.infrastructure.db.session import dispose_engine
from chat_relay.infrastructure.db.uow import open_uow
from chat_relay.infrastructure.ws.registry import PresenceRegistry
from chat_relay.services.notification_router import NotificationRouter
from chat_relay.workers.presence_reconciler import PresenceReconciler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    app.state.notification_queue = RedisNotificationQueue(
        app.state.redis,
        prefix=settings.NOTIFICATION_QUEUE_PREFIX,
        max_items=settings.NOTIFICATION_QUEUE_MAX,
        ttl_seconds=settings.NOTIFICATION_TTL_SECONDS,
    )
    app.state.notifier = NotificationRouter(app.state.registry, app.state.notification_queue)

    reconciler = PresenceReconciler(
        app.state.registry,
        app.state.uow_factory,
        settings.PRESENCE_SWEEP_SECONDS,
    )
    await reconciler.start()
    app.state.presence_reconciler = reconciler

    yield

    await reconciler.stop()
    await app.state.registry.close()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")
    await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = PresenceRegistry()
    app.state.uow_factory = open_uow

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(users.router)
    app.include_router(ws.router)

    return app


def _unavailable() -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": TransientError.public_detail})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(_req: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(TransientError)
    async def _transient(_req: Request, exc: TransientError) -> JSONResponse:
        logger.warning("Transient failure: %s", exc.detail)
        return _unavailable()

    @app.exception_handler(SQLAlchemyError)
    async def _database(_req: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database error", exc_info=exc)
        return _unavailable()

    @app.exception_handler(RedisError)
    async def _redis(_req: Request, exc: RedisError) -> JSONResponse:
        logger.exception("Redis error", exc_info=exc)
        return _unavailable()
