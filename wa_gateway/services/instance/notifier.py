# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Notificador en tiempo real: registro de canales por tenant y
#              difusión de transiciones de conexión.
# ============================================================================
"""
Realtime Notifier.

Single Responsibility: Deliver connection-state transitions to observers.

Push mode: each tenant may have one registered transport channel (last
registration wins); `instance_connected` / `instance_status` events are sent
to it. Delivery is best effort: a missing or broken channel just misses the
event. Dispatch never blocks the caller: delivery runs in tracked tasks so
ledger scopes are not held across transport writes.

Pull mode (periodic SSE snapshots) lives in status_stream.py and is
independent of this registry.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from wa_gateway.models.instance import InstanceRecord, InstanceStatus

if TYPE_CHECKING:
    from .state_machine import Transition

logger = logging.getLogger(__name__)

EVENT_INSTANCE_CONNECTED = "instance_connected"
EVENT_INSTANCE_STATUS = "instance_status"


@runtime_checkable
class PushChannel(Protocol):
    """Transport a tenant registers on (FastAPI WebSocket satisfies it)."""

    async def send_json(self, data: Any) -> None: ...


class ChannelRegistry:
    """Ephemeral tenant -> channel map, owned by the notifier."""

    def __init__(self) -> None:
        self._by_tenant: dict[str, PushChannel] = {}

    def register(self, tenant_id: str, channel: PushChannel) -> PushChannel | None:
        """Register a channel; returns the channel it replaced, if any."""
        tenant_id = str(tenant_id)
        previous = self._by_tenant.get(tenant_id)
        self._by_tenant[tenant_id] = channel
        return previous if previous is not channel else None

    def unregister(self, channel: PushChannel) -> str | None:
        """Remove a channel wherever it is still the current registration."""
        for tenant_id, current in list(self._by_tenant.items()):
            if current is channel:
                del self._by_tenant[tenant_id]
                return tenant_id
        return None

    def get(self, tenant_id: str) -> PushChannel | None:
        return self._by_tenant.get(str(tenant_id))

    def clear(self) -> None:
        self._by_tenant.clear()

    def __len__(self) -> int:
        return len(self._by_tenant)


def connected_payload(record: InstanceRecord) -> dict[str, Any]:
    """Wire payload of `instance_connected`."""
    return {
        "user_id": record.tenant_id,
        "instance_id": record.session_name,
        "deviceName": record.device_name,
        "phoneNumber": record.phone_number,
        "connected_at": record.connected_at.isoformat() if record.connected_at else None,
    }


def status_payload(record: InstanceRecord, previous: InstanceStatus | None = None) -> dict[str, Any]:
    return {
        "user_id": record.tenant_id,
        "instance_id": record.session_name,
        "status": record.status.value,
        "previous_status": previous.value if previous else None,
        "updated_at": record.updated_at.isoformat(),
    }


class RealtimeNotifier:
    """Fans transitions out to registered push channels."""

    def __init__(self, registry: ChannelRegistry | None = None) -> None:
        self.registry = registry or ChannelRegistry()
        self._pending: set[asyncio.Task[bool]] = set()
        self.dispatch_count = 0

    def dispatch(self, transition: "Transition") -> None:
        """Emit one notification for an accepted transition."""
        record = transition.record
        if record is None:
            return
        self.dispatch_count += 1
        if record.status == InstanceStatus.CONNECTED:
            self.publish_nowait(record.tenant_id, EVENT_INSTANCE_CONNECTED, connected_payload(record))
        else:
            self.publish_nowait(
                record.tenant_id, EVENT_INSTANCE_STATUS, status_payload(record, transition.previous_status)
            )

    def publish_nowait(self, tenant_id: str, event: str, payload: dict[str, Any]) -> None:
        """Schedule delivery without waiting for the transport."""
        if self.registry.get(tenant_id) is None:
            logger.debug(f"No push channel for tenant {tenant_id}; '{event}' not delivered")
            return
        task = asyncio.create_task(self.publish(tenant_id, event, payload), name=f"notify:{tenant_id}:{event}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def publish(self, tenant_id: str, event: str, payload: dict[str, Any]) -> bool:
        """Send one event to the tenant's channel; False when not delivered."""
        channel = self.registry.get(tenant_id)
        if channel is None:
            logger.debug(f"No push channel for tenant {tenant_id}; '{event}' not delivered")
            return False
        try:
            await channel.send_json({"type": event, "data": payload})
        except Exception as e:
            logger.warning(f"Push of '{event}' to tenant {tenant_id} failed, dropping channel: {e}")
            self.registry.unregister(channel)
            return False
        logger.debug(f"'{event}' pushed to tenant {tenant_id}")
        return True

    async def drain(self) -> None:
        """Wait for every scheduled delivery."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        await self.drain()
        self.registry.clear()
