"""
Application factory for FastAPI.

This module follows SRP by handling only FastAPI application creation and configuration.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wa_gateway.api.exception_handlers import register_exception_handlers
from wa_gateway.api.middleware.logging_middleware import RequestLoggingMiddleware
from wa_gateway.api.router import api_router
from wa_gateway.config.settings import Settings, get_settings
from wa_gateway.core.container import DependencyContainer
from wa_gateway.core.lifecycle import LifecycleManager, lifespan

logger = logging.getLogger(__name__)


class AppFactory:
    """
    Factory for creating and configuring FastAPI applications.

    Separates application creation from configuration details.
    Each configuration step is handled by a dedicated method.
    """

    def __init__(self, settings: Settings | None = None, container: DependencyContainer | None = None) -> None:
        """
        Initialize app factory.

        Args:
            settings: Application settings (uses default if not provided)
            container: Pre-wired dependency container (tests)
        """
        self._settings = settings or (container.settings if container else get_settings())
        self._container = container or DependencyContainer(self._settings)

    def create_app(self) -> FastAPI:
        """
        Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application instance.
        """
        app = self._create_base_app()

        self._configure_state(app)
        self._configure_middleware(app)
        self._configure_exception_handlers(app)
        self._configure_routes(app)
        self._configure_health_endpoint(app)

        logger.info(f"Application created: {self._settings.PROJECT_NAME}")
        return app

    def _create_base_app(self) -> FastAPI:
        return FastAPI(
            title=self._settings.PROJECT_NAME,
            description=self._settings.PROJECT_DESCRIPTION,
            version=self._settings.VERSION,
            docs_url=f"{self._settings.API_V1_STR}/docs" if self._settings.DEBUG else None,
            redoc_url=f"{self._settings.API_V1_STR}/redoc" if self._settings.DEBUG else None,
            lifespan=lifespan,
        )

    def _configure_state(self, app: FastAPI) -> None:
        """Attach the container and lifecycle manager used by dependencies and lifespan."""
        app.state.container = self._container
        app.state.lifecycle = LifecycleManager(self._container)

    def _configure_middleware(self, app: FastAPI) -> None:
        """
        Configure application middleware.

        Middleware order matters:
        1. CORS (outermost)
        2. Request logging
        """
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self._get_cors_origins(),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        app.add_middleware(RequestLoggingMiddleware, tenant_header=self._settings.TENANT_HEADER)

        logger.info("Middleware configured")

    def _configure_exception_handlers(self, app: FastAPI) -> None:
        register_exception_handlers(app)

    def _configure_routes(self, app: FastAPI) -> None:
        app.include_router(api_router, prefix=self._settings.API_V1_STR)
        logger.info("Routes configured")

    def _configure_health_endpoint(self, app: FastAPI) -> None:
        """Add health check endpoint."""

        @app.get("/health", tags=["health"])
        async def health_check() -> dict[str, str]:
            """Basic status, environment and provider information."""
            return {
                "status": "ok",
                "environment": self._settings.ENVIRONMENT,
                "provider": self._settings.PROVIDER,
            }

    def _get_cors_origins(self) -> list[str]:
        """Allowed CORS origins: everything in debug, else the configured list."""
        if self._settings.DEBUG:
            return ["*"]
        return [origin.strip() for origin in self._settings.CORS_ORIGINS.split(",") if origin.strip()]


def create_app(settings: Settings | None = None, container: DependencyContainer | None = None) -> FastAPI:
    """
    Create FastAPI application using the factory.

    Args:
        settings: Optional settings override
        container: Optional pre-wired container (tests inject fake adapters here)

    Returns:
        Configured FastAPI application
    """
    factory = AppFactory(settings, container)
    return factory.create_app()
