# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Ingreso de webhooks del proveedor (estado de conexión y
#              estado de mensajes). Siempre responde 200.
# ============================================================================
"""
Vendor webhook endpoints.

ENDPOINTS:
  - POST /webhooks/instances/{tenant_id} → connection status events
  - POST /webhooks/message-status        → message delivery callbacks (ack only)

Both always answer HTTP 200 so vendors do not retry rejected payloads.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from wa_gateway.api.dependencies import get_orchestrator
from wa_gateway.services.instance import InstanceOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADERS = ("X-Webhook-Token", "X-Signature")


@router.post("/instances/{tenant_id}")
async def instance_webhook(
    tenant_id: str,
    request: Request,
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """Fold a vendor connection event into the tenant's record."""
    raw_body = await request.body()
    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if request.headers.get(h)), None)

    ack = await orchestrator.handle_inbound_event(tenant_id, raw_body, signature)
    if not ack.accepted:
        logger.info(f"Webhook for tenant {tenant_id} ignored ({ack.reason})")
    return ack.to_dict()


@router.post("/message-status")
async def message_status_webhook(request: Request) -> dict[str, Any]:
    """Acknowledge message status callbacks; they are logged only."""
    raw_body = await request.body()
    logger.info(f"Message status callback received ({len(raw_body)} bytes)")
    return {"ok": True}
