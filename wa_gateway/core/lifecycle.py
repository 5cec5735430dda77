"""
Application lifecycle management using modern FastAPI lifespan pattern.

This module follows SRP by handling only application startup/shutdown logic.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from wa_gateway.core.background_services import BackgroundServiceManager
from wa_gateway.core.container import DependencyContainer
from wa_gateway.repositories import RedisInstanceStore

logger = logging.getLogger(__name__)


class LifecycleManager:
    """
    Manages application lifecycle events.

    Handles startup initialization and graceful shutdown.
    Separates concerns from the main application factory.
    """

    def __init__(self, container: DependencyContainer) -> None:
        self._container = container
        self._background_service_manager = BackgroundServiceManager(
            container.get_orchestrator(),
            poll_interval=container.settings.STATUS_POLL_INTERVAL_SECONDS,
        )
        self._initialized = False

    @property
    def background_services(self) -> BackgroundServiceManager:
        return self._background_service_manager

    async def startup(self) -> None:
        """
        Execute startup tasks.

        Called when the application starts.
        """
        if self._initialized:
            logger.warning("Lifecycle already initialized, skipping startup")
            return

        logger.info("Starting application lifecycle...")

        self._verify_configurations()

        await self._container.get_adapter().initialize()
        await self._connect_store()

        await self._background_service_manager.start()

        self._initialized = True
        logger.info("Application lifecycle startup completed")

    async def shutdown(self) -> None:
        """
        Execute shutdown tasks.

        Called when the application stops.
        """
        if not self._initialized:
            logger.warning("Lifecycle not initialized, skipping shutdown")
            return

        logger.info("Stopping application lifecycle...")

        await self._background_service_manager.stop()
        await self._container.close()

        self._initialized = False
        logger.info("Application lifecycle shutdown completed")

    def _verify_configurations(self) -> None:
        """Verify critical application configurations."""
        settings = self._container.settings

        if settings.PROVIDER == "uazapi":
            if not settings.UAZAPI_BASE_URL:
                logger.warning("UAZAPI_BASE_URL not configured - vendor calls will fail")
            if not settings.UAZAPI_ADMIN_TOKEN:
                logger.warning("UAZAPI_ADMIN_TOKEN not configured - session creation and admin calls disabled")
            if settings.UAZAPI_DISABLE_GLOBAL_FALLBACK:
                logger.info("Global uazapi token fallback is disabled")
        elif settings.PROVIDER == "zapi" and not (settings.ZAPI_INSTANCE_ID and settings.ZAPI_TOKEN):
            logger.warning("ZAPI_INSTANCE_ID/ZAPI_TOKEN not configured - sends will fail")

        if not settings.WEBHOOK_SECRET:
            logger.warning("WEBHOOK_SECRET not configured - inbound webhooks are accepted unsigned")

        if settings.MANUAL_INSTANCE_MODE:
            logger.info("Manual instance mode: sessions must be bound explicitly")

    async def _connect_store(self) -> None:
        """Open the Redis connection when the ledger is Redis-backed."""
        store = self._container.get_store()
        if isinstance(store, RedisInstanceStore):
            await store.connect()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Modern FastAPI lifespan context manager.

    Usage:
        app = FastAPI(lifespan=lifespan)
        app.state.lifecycle = LifecycleManager(container)
    """
    lifecycle: LifecycleManager = app.state.lifecycle

    # Startup
    await lifecycle.startup()

    yield  # Application runs here

    # Shutdown
    await lifecycle.shutdown()
