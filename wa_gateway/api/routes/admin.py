# ============================================================================
# SCOPE: GLOBAL
# Description: Administración del proveedor: configuración del webhook de
#              estado de mensajes.
# ============================================================================
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from wa_gateway.api.dependencies import get_app_settings, get_orchestrator
from wa_gateway.api.schemas import ConfigureWebhookRequest
from wa_gateway.config.settings import Settings
from wa_gateway.services.instance import InstanceOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/webhook")
async def configure_webhook(
    request: ConfigureWebhookRequest | None = Body(default=None),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """
    Point the vendor's message-status webhook at this gateway.

    Vendors without a webhook API get `applied: false` and a note with the
    URL to set on their dashboard.
    """
    public_url = (request.public_url if request else None) or settings.PUBLIC_BASE_URL
    if not public_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="public_url is required when PUBLIC_BASE_URL is not configured",
        )

    result = await orchestrator.configure_webhook(public_url)
    logger.info(f"Webhook configuration: url={result.webhook_url} applied={result.applied}")
    return {
        "success": True,
        "webhook_url": result.webhook_url,
        "applied": result.applied,
        "note": result.note,
    }
