"""
Main application module for the presence registry service.

Serves the REST API through FastAPI and the realtime transport through
Socket.IO from one ASGI application:

    uvicorn presence_registry.registry.app.main:create_asgi_app --factory
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Awaitable, Callable, Optional

import socketio
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from presence_registry.shared.utils.logging_config import setup_logging
from presence_registry.shared.utils.retry import CircuitBreaker, with_retry

from .api.routers import router
from .core.activity_ledger import LastActivityLedger
from .core.config import Settings, get_settings, get_socket_io_config
from .core.connection_store import ConnectionRecordStore
from .core.events import RegistryEvents
from .core.registry import ConnectionRegistry
from .db.mongo import (
    check_mongo_health,
    close_mongo_connection,
    create_client,
    init_mongo,
)
from .db.store import KeyValueStore, MongoKeyValueStore

logger = logging.getLogger(__name__)


def build_registry(store: KeyValueStore, settings: Settings) -> ConnectionRegistry:
    """Wire the registry components around a backing store"""
    return ConnectionRegistry(
        connection_store=ConnectionRecordStore(
            store, ttl=timedelta(minutes=settings.CONNECTION_TTL_MINUTES)
        ),
        activity_ledger=LastActivityLedger(
            store, retention_months=settings.ACTIVITY_RETENTION_MONTHS
        ),
    )


async def _always_healthy() -> bool:
    return True


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    health_check: Optional[Callable[[], Awaitable[bool]]] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Without an explicit store the registry is backed by MongoDB, reached
    through the settings' URI and verified during start-up.
    """
    settings = settings or get_settings()
    mongo_client = None

    if store is None:
        mongo_client = create_client(settings)
        db = mongo_client[settings.MONGO_DB_NAME]
        store = MongoKeyValueStore(db[settings.REGISTRY_TABLE_NAME])

        if health_check is None:
            async def health_check() -> bool:
                return await check_mongo_health(db)

    registry = build_registry(store, settings)
    mongo_cb = CircuitBreaker("mongo", failure_threshold=3, reset_timeout=30.0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting presence registry...")
        if mongo_client is not None:
            await with_retry(
                lambda: init_mongo(mongo_client, settings.MONGO_DB_NAME),
                max_attempts=5,
                initial_delay=1.0,
                max_delay=30.0,
                circuit_breaker=mongo_cb,
            )
            await with_retry(
                store.ensure_indexes,
                max_attempts=3,
                circuit_breaker=mongo_cb,
            )
        logger.info("Presence registry started successfully")

        yield

        logger.info("Shutting down presence registry")
        if mongo_client is not None:
            close_mongo_connection(mongo_client)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Tracks connected users and their online status",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.health_check = health_check or _always_healthy
    app.include_router(router, prefix=settings.API_PREFIX)
    return app


def create_asgi_app(settings: Optional[Settings] = None) -> socketio.ASGIApp:
    """Create the combined Socket.IO + REST application."""
    load_dotenv()
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = create_app(settings)
    sio = socketio.AsyncServer(logger=False, **get_socket_io_config(settings))
    app.state.sio = sio
    app.state.registry_events = RegistryEvents(sio, app.state.registry, settings)

    return socketio.ASGIApp(
        sio, other_asgi_app=app, socketio_path=settings.SOCKET_IO_PATH
    )


if __name__ == "__main__":
    uvicorn.run(
        "presence_registry.registry.app.main:create_asgi_app",
        factory=True,
        host="0.0.0.0",
        port=8005,
    )
