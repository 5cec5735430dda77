"""
Application entry point.

This module follows SRP by only serving as the application entry point.
All configuration, middleware, and lifecycle management is delegated
to specialized modules.
"""

import logging

import sentry_sdk

from wa_gateway.config.settings import get_settings
from wa_gateway.core.app_factory import create_app

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Binding/token audit trail
if settings.AUDIT_LOG_FILE:
    audit_handler = logging.FileHandler(settings.AUDIT_LOG_FILE)
    audit_handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    logging.getLogger("wa_gateway.audit").addHandler(audit_handler)

# Initialize Sentry for error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        send_default_pii=False,
        environment=settings.ENVIRONMENT,
    )

# Create application using factory
app = create_app(settings)

if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting gateway in {settings.ENVIRONMENT} mode (provider={settings.PROVIDER})")
    uvicorn.run(
        "wa_gateway.main:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.is_development,
    )
