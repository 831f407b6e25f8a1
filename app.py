from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import RedisBackend, create_redis_client
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from routers.signals import signals_router
from services.membership import MembershipManager
from services.registry import RoomRegistry
from services.relay import SignalRelay

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def install_services(app: FastAPI, backend: RedisBackend):
    """Wire the store into every component; all of them share this one backend."""
    app.state.backend = backend
    app.state.registry = RoomRegistry(backend)
    app.state.membership = MembershipManager(backend)
    app.state.relay = SignalRelay(backend)


def create_app(backend: Optional[RedisBackend] = None) -> FastAPI:
    """Build the application. Without ``backend`` a Redis connection is opened
    at startup from the environment and closed at shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "backend", None) is None:
            owned = RedisBackend(create_redis_client())
            await owned.ping()
            install_services(app, owned)
        logger.info("Signaling service started")
        yield
        if owned is not None:
            await owned.close()
            app.state.backend = None
        logger.info("Signaling service stopped")

    app = FastAPI(title="Rendezvous signaling", lifespan=lifespan)
    app.state.backend = None
    if backend is not None:
        install_services(app, backend)

    # Configure CORS, open to all origins unless CORS_ORIGINS says otherwise
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(signals_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
