# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Stream periódico de estado (pull) para un tenant, consumido por
#              el endpoint SSE.
# ============================================================================
"""
Status Stream.

Single Responsibility: Produce periodic status snapshots for one tenant.

Each tick polls the orchestrator and yields a `status` event. The first
connected observation of the stream also yields one `connected` event.
Vendor or ledger errors are yielded as `error` events and the stream keeps
running until the consumer stops iterating.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

from wa_gateway.config.settings import clamp_stream_interval
from wa_gateway.integrations.providers.exceptions import GatewayError
from wa_gateway.models.instance import EventSource

from .notifier import connected_payload

if TYPE_CHECKING:
    from .orchestrator import InstanceOrchestrator

logger = logging.getLogger(__name__)

StreamEvent = tuple[str, dict[str, Any]]


class StatusStream:
    """Async iterator of (event, payload) pairs for one tenant."""

    def __init__(
        self,
        orchestrator: "InstanceOrchestrator",
        tenant_id: str,
        interval_ms: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self.tenant_id = str(tenant_id)
        self.interval_ms = clamp_stream_interval(interval_ms)
        self._sleep = sleep
        self._announced = False
        self.ticks = 0

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._run()

    async def _run(self) -> AsyncIterator[StreamEvent]:
        logger.info(f"Status stream opened for tenant {self.tenant_id} (interval {self.interval_ms}ms)")
        try:
            while True:
                for event in await self.tick():
                    yield event
                await self._sleep(self.interval_ms / 1000)
        finally:
            logger.info(f"Status stream closed for tenant {self.tenant_id} after {self.ticks} tick(s)")

    async def tick(self) -> list[StreamEvent]:
        """One poll; returns the events to emit for it."""
        self.ticks += 1
        try:
            snapshot = await self._orchestrator.get_status(self.tenant_id, source=EventSource.STREAM)
        except GatewayError as e:
            logger.warning(f"Status stream tick for tenant {self.tenant_id} failed: {e}")
            return [("error", {"message": e.message, "kind": e.kind})]

        events: list[StreamEvent] = [("status", snapshot.to_dict())]
        if snapshot.connected and not self._announced:
            self._announced = True
            events.append(("connected", connected_payload(snapshot.record)))
        return events
