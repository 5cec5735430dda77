# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Canales en tiempo real: stream SSE de estado, poll de respaldo
#              y WebSocket para notificaciones push por tenant.
# ============================================================================
"""
Realtime endpoints.

ENDPOINTS:
  - GET /instances/events   → SSE stream of periodic status snapshots
  - GET /status/{tenant_id} → poll fallback; pushes `instance_connected` when connected
  - WS  /ws/instances       → push channel; client sends {"type": "register", "user_id"}

Protocol (server → client WebSocket JSON messages):
    {"type": "registered", "data": {"user_id": "..."}}
    {"type": "instance_connected", "data": {...}}
    {"type": "instance_status", "data": {...}}
    {"type": "error", "data": {"message": "..."}}
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from wa_gateway.api.dependencies import get_app_settings, get_orchestrator, get_tenant_id
from wa_gateway.config.settings import Settings
from wa_gateway.services.instance import InstanceOrchestrator, StatusStream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _format_sse_event(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


@router.get("/instances/events")
async def instance_events(
    interval_ms: int | None = Query(None, description="Polling interval in milliseconds (clamped 1000-15000)"),
    settings: Settings = Depends(get_app_settings),  # noqa: B008
    tenant_id: str = Depends(get_tenant_id),  # noqa: B008
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> StreamingResponse:
    """
    Server-Sent Events stream of the tenant's connection status.

    Emits `status` every interval, `connected` once when the session is
    first seen connected, and `error` when a poll fails.
    """
    stream = StatusStream(orchestrator, tenant_id, interval_ms or settings.stream_interval_ms)

    async def generate_sse_stream():
        async for event, data in stream:
            yield _format_sse_event(event, data)

    return StreamingResponse(
        generate_sse_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/status/{tenant_id}")
async def poll_status(
    tenant_id: str,
    orchestrator: InstanceOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict[str, Any]:
    """Poll fallback for clients without a push channel."""
    snapshot = await orchestrator.get_status(tenant_id, notify=True)
    return snapshot.to_dict()


@router.websocket("/ws/instances")
async def instances_ws(websocket: WebSocket) -> None:
    """Push channel for instance notifications (last registration per tenant wins)."""
    notifier = websocket.app.state.container.get_notifier()
    await websocket.accept()
    registered_for: str | None = None

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "data": {"message": "Invalid JSON"}})
                continue
            message_type = data.get("type") if isinstance(data, dict) else None

            if message_type == "register":
                user_id = str(data.get("user_id") or "").strip()
                if not user_id:
                    await websocket.send_json({"type": "error", "data": {"message": "Missing 'user_id' field"}})
                    continue
                if registered_for and registered_for != user_id:
                    notifier.registry.unregister(websocket)
                notifier.registry.register(user_id, websocket)
                registered_for = user_id
                logger.info(f"Push channel registered for tenant {user_id}")
                await websocket.send_json({"type": "registered", "data": {"user_id": user_id}})

            elif message_type == "ping":
                await websocket.send_json({"type": "pong", "data": {}})

    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected (tenant {registered_for})")
    finally:
        notifier.registry.unregister(websocket)
