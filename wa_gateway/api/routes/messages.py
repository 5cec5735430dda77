# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Envío de mensajes de texto y carrusel por la sesión del tenant.
# ============================================================================
"""
Messaging endpoints.

Sends never use the global fallback credential: a tenant without a
resolvable session token gets a 400 credentials_missing error.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from wa_gateway.api.dependencies import get_orchestrator, get_tenant_id
from wa_gateway.api.schemas import CarouselMessageRequest, TextMessageRequest
from wa_gateway.services.instance import InstanceOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/text")
async def send_text(
    request: TextMessageRequest,
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    result = await orchestrator.send(tenant_id, request.to_message())
    logger.info(f"Text message sent for tenant {tenant_id}")
    return {"success": True, "result": result}


@router.post("/carousel")
async def send_carousel(
    request: CarouselMessageRequest,
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    result = await orchestrator.send(tenant_id, request.to_message())
    logger.info(f"Carousel with {len(request.cards)} card(s) sent for tenant {tenant_id}")
    return {"success": True, "result": result}
