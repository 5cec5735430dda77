# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Dependencias FastAPI para inyección. El tenant se toma del
#              header configurado (TENANT_HEADER).
# ============================================================================
import logging

from fastapi import Depends, HTTPException, Request, status

from wa_gateway.config.settings import Settings
from wa_gateway.core.container import DependencyContainer
from wa_gateway.services.instance import InstanceOrchestrator, RealtimeNotifier

logger = logging.getLogger(__name__)


def get_container(request: Request) -> DependencyContainer:
    """[GLOBAL] Dependency container attached by the app factory."""
    return request.app.state.container


def get_app_settings(
    container: DependencyContainer = Depends(get_container),  # noqa: B008
) -> Settings:
    return container.settings


def get_orchestrator(
    container: DependencyContainer = Depends(get_container),  # noqa: B008
) -> InstanceOrchestrator:
    """[GLOBAL] Instance orchestrator singleton."""
    return container.get_orchestrator()


def get_notifier(
    container: DependencyContainer = Depends(get_container),  # noqa: B008
) -> RealtimeNotifier:
    return container.get_notifier()


def get_tenant_id(
    request: Request,
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> str:
    """
    [TENANT] Tenant id from the configured header.

    Raises:
        HTTPException 400: Header missing or empty
    """
    tenant_id = (request.headers.get(settings.TENANT_HEADER) or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing tenant header '{settings.TENANT_HEADER}'",
        )
    return tenant_id
