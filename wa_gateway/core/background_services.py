"""
Background services management for the gateway.

This module follows SRP by handling only background task orchestration:
the periodic status poll of tenants waiting for a QR scan.
"""

import asyncio
import logging
from typing import Any

from wa_gateway.integrations.providers.exceptions import GatewayError
from wa_gateway.models.instance import EventSource
from wa_gateway.services.instance import InstanceOrchestrator

logger = logging.getLogger(__name__)


class BackgroundServiceManager:
    """
    Manages background services lifecycle.

    The status poller re-checks every watched tenant (session in
    `awaiting_qr`) so a completed scan is noticed even when the vendor does
    not call the webhook and no stream is open. Disabled with an interval
    of 0.
    """

    def __init__(self, orchestrator: InstanceOrchestrator, poll_interval: float = 0.0) -> None:
        self._orchestrator = orchestrator
        self._poll_interval = poll_interval
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._running = False
        self.poll_rounds = 0

    @property
    def is_running(self) -> bool:
        """Check if background services are running."""
        return self._running

    async def start(self) -> None:
        """Start all background services."""
        if self._running:
            logger.warning("Background services already running")
            return

        logger.info("Starting background services...")

        if self._poll_interval > 0:
            task = asyncio.create_task(self._poll_loop(), name="instance_status_poller")
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            logger.info(f"Instance status poller started (every {self._poll_interval}s)")
        else:
            logger.info("Instance status poller disabled (STATUS_POLL_INTERVAL_SECONDS=0)")

        self._running = True
        logger.info("Background services started")

    async def stop(self) -> None:
        """Stop all background services gracefully."""
        if not self._running:
            logger.warning("Background services not running")
            return

        logger.info("Stopping background services...")

        for task in list(self._background_tasks):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._background_tasks.clear()
        self._running = False
        logger.info("Background services stopped")

    async def poll_once(self) -> int:
        """
        Poll every watched tenant once.

        Returns:
            Number of tenants polled
        """
        tenant_ids = sorted(self._orchestrator.watched)
        for tenant_id in tenant_ids:
            try:
                snapshot = await self._orchestrator.get_status(tenant_id, notify=False, source=EventSource.POLL)
                logger.debug(f"Poller: tenant {tenant_id} is {snapshot.record.status.value}")
            except GatewayError as e:
                logger.warning(f"Poller: status check for tenant {tenant_id} failed: {e}")
            except Exception as e:
                logger.error(f"Poller: unexpected error for tenant {tenant_id}: {e}", exc_info=True)
        self.poll_rounds += 1
        return len(tenant_ids)

    async def _poll_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._poll_interval)
                try:
                    await self.poll_once()
                except Exception as e:
                    logger.error(f"Poller round failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Instance status poller cancelled")
            raise

    def get_status(self) -> dict[str, Any]:
        """
        Get status of background services.

        Returns:
            Dictionary with service status information.
        """
        return {
            "running": self._running,
            "active_tasks": len(self._background_tasks),
            "watched_tenants": len(self._orchestrator.watched),
            "poll_rounds": self.poll_rounds,
        }
