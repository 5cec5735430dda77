# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Endpoints de ciclo de vida de la instancia del tenant
#              (crear, vincular, conectar, estado, QR, desconectar).
# ============================================================================
"""
Instance lifecycle endpoints.

ENDPOINTS:
  - POST /instances/ensure     → create the tenant's session when missing
  - POST /instances/bind       → link an existing vendor session
  - POST /instances/connect    → start the connection flow (QR / pair code)
  - GET  /instances/status     → vendor status folded into the ledger
  - GET  /instances/qr         → QR code (auto-disconnects stale sessions)
  - POST /instances/disconnect → log the session out
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from wa_gateway.api.dependencies import get_orchestrator, get_tenant_id
from wa_gateway.api.schemas import BindSessionRequest, ConnectRequest
from wa_gateway.services.instance import InstanceOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["instances"])


@router.post("/ensure")
async def ensure_instance(
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """Create the tenant's vendor session if it does not exist yet."""
    result = await orchestrator.ensure_session(tenant_id)
    return {"success": True, **result.to_dict()}


@router.post("/bind")
async def bind_instance(
    request: BindSessionRequest,
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """Bind the tenant to an existing session, optionally with its token."""
    result = await orchestrator.bind_session(tenant_id, request.name, request.token)
    return {"success": True, **result.to_dict()}


@router.post("/connect")
async def connect_instance(
    request: ConnectRequest | None = Body(default=None),  # noqa: B008
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """
    Start the vendor connection flow.

    Returns immediately with `connected: true` when the session is already
    online; otherwise returns a QR (and pair code when a phone is given).
    """
    phone = request.phone if request else None
    result = await orchestrator.connect(tenant_id, phone)
    return {"success": True, **result.to_dict()}


@router.get("/status")
async def instance_status(
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    snapshot = await orchestrator.get_status(tenant_id)
    return snapshot.to_dict()


@router.get("/qr")
async def instance_qr(
    force: bool = Query(False, description="Ask the vendor for a fresh QR"),
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """QR code for the tenant's session, when one is available."""
    result = await orchestrator.get_qr_code(tenant_id, force=force)
    return result.to_dict()


@router.post("/disconnect")
async def disconnect_instance(
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    record = await orchestrator.disconnect(tenant_id)
    return {"success": True, **record.to_public_dict()}
