"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings, get_database_url
from .database import Database
from .exceptions import ConfigurationError
from .routers import devices_router, notifications_router, stats_router
from .services.factory import build_services

logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None, start_scheduler: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings to use, the environment-loaded settings by default
        start_scheduler: Run processing cycles in the background
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        logger.info(f"Starting PushRelay in {config.mode.upper()} mode")

        database = Database(get_database_url(config))
        await database.init()
        logger.info("Database initialized")

        services = build_services(config, database)
        app.state.database = database
        app.state.services = services

        if start_scheduler:
            # Refuse to accept notifications that would never be dispatched
            try:
                config.validate_for_dispatch()
            except ConfigurationError as e:
                logger.error(f"Configuration error, refusing to start: {e}")
                await database.close()
                raise
            services.scheduler.start()

        yield

        # Shutdown
        await services.scheduler.stop()
        await database.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="PushRelay",
        description="Device registry and push notification delivery (Web Push and FCM)",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware for the PWA front end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(devices_router)
    app.include_router(notifications_router)
    app.include_router(stats_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "mode": config.mode,
        }

    return app
