# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Máquina de estados de conexión por tenant. Aplica eventos de
#              poll, webhook y stream sobre el ledger.
# ============================================================================
"""
Connection State Machine.

Single Responsibility: Decide how a ConnectionEvent or an API-driven
transition changes a tenant's InstanceRecord.

States: unlinked -> created -> awaiting_qr -> connected,
        connected -> disconnected, disconnected -> awaiting_qr.
Event-reported `connected` is accepted from any linked, non-connected state;
explicit disconnects are accepted from any linked state.

Every call must run inside `ledger.scope(tenant_id)`. Each accepted status
change produces one ledger write and one notifier dispatch. Events that do
not change the status only refresh metadata and `updated_at`.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from wa_gateway.integrations.providers.extraction import (
    AWAITING_QR_STATES,
    CONNECTED_STATES,
    DISCONNECTED_STATES,
)
from wa_gateway.models.instance import ConnectionEvent, EventSource, InstanceRecord, InstanceStatus, utc_now

from .ledger import InstanceLedger
from .notifier import RealtimeNotifier

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.UNLINKED: frozenset({InstanceStatus.CREATED}),
    InstanceStatus.CREATED: frozenset(
        {InstanceStatus.AWAITING_QR, InstanceStatus.CONNECTED, InstanceStatus.DISCONNECTED}
    ),
    InstanceStatus.AWAITING_QR: frozenset({InstanceStatus.CONNECTED, InstanceStatus.DISCONNECTED}),
    InstanceStatus.CONNECTED: frozenset({InstanceStatus.DISCONNECTED}),
    InstanceStatus.DISCONNECTED: frozenset({InstanceStatus.AWAITING_QR, InstanceStatus.CONNECTED}),
}


class TransitionOutcome(str, Enum):
    TRANSITIONED = "transitioned"
    REFRESHED = "refreshed"
    MISMATCH = "session_mismatch"
    STALE = "stale"
    REJECTED = "rejected"
    NOT_LINKED = "not_linked"


@dataclass
class Transition:
    """Result of applying an event or an API-driven move."""

    outcome: TransitionOutcome
    tenant_id: str
    record: InstanceRecord | None
    previous_status: InstanceStatus | None = None
    source: EventSource = EventSource.API

    @property
    def changed(self) -> bool:
        return self.outcome == TransitionOutcome.TRANSITIONED

    @property
    def status(self) -> InstanceStatus | None:
        return self.record.status if self.record else None


def status_from_report(reported: str | None) -> InstanceStatus | None:
    """Map a vendor status string to a lifecycle state (None when unknown)."""
    if not reported:
        return None
    reported = reported.strip().lower()
    if reported in CONNECTED_STATES:
        return InstanceStatus.CONNECTED
    if reported in DISCONNECTED_STATES:
        return InstanceStatus.DISCONNECTED
    if reported in AWAITING_QR_STATES:
        return InstanceStatus.AWAITING_QR
    return None


def is_allowed(current: InstanceStatus, target: InstanceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class ConnectionStateMachine:
    """Applies connection observations to the ledger and notifies observers."""

    def __init__(self, ledger: InstanceLedger, notifier: RealtimeNotifier) -> None:
        self._ledger = ledger
        self._notifier = notifier

    async def apply(self, event: ConnectionEvent) -> Transition:
        """
        Fold a ConnectionEvent into the tenant's record.

        Dropped (no write): unknown/unlinked tenant, session hint mismatch,
        and events initiated before the last applied observation.
        """
        tenant_id = event.tenant_id
        record = await self._ledger.get(tenant_id)

        if record is None or not record.is_linked:
            logger.info(f"[{event.source.value}] event for tenant {tenant_id} ignored: no linked session")
            return Transition(TransitionOutcome.NOT_LINKED, tenant_id, record, source=event.source)

        if event.session_hint and event.session_hint.lower() != record.session_name.lower():
            logger.warning(
                f"[{event.source.value}] session mismatch for tenant {tenant_id}: "
                f"event={event.session_hint} record={record.session_name}; dropped"
            )
            return Transition(TransitionOutcome.MISMATCH, tenant_id, record, record.status, event.source)

        if event.observation is not None and event.observation < record.last_observation:
            logger.info(
                f"[{event.source.value}] stale observation #{event.observation} for tenant {tenant_id} "
                f"(last applied #{record.last_observation}); dropped"
            )
            return Transition(TransitionOutcome.STALE, tenant_id, record, record.status, event.source)

        changes: dict[str, Any] = {}
        if event.device_name:
            changes["device_name"] = event.device_name
        if event.phone_number:
            changes["phone_number"] = event.phone_number
        if event.observation is not None:
            changes["last_observation"] = max(record.last_observation, event.observation)

        target = status_from_report(event.reported_status)
        return await self._move(record, target, changes, event.source, connected_at=event.observed_at)

    async def transition(
        self,
        tenant_id: str,
        target: InstanceStatus,
        *,
        source: EventSource = EventSource.API,
        observation: int | None = None,
        **changes: Any,
    ) -> Transition:
        """
        API-driven move (create, connect, disconnect).

        `observation` is the clock value taken when the operation started;
        without one a fresh value is drawn. The move always applies, and
        `last_observation` never goes backwards, so events observed while
        the vendor call was in flight still apply afterwards.
        """
        record = await self._ledger.get(tenant_id)
        if observation is None:
            observation = self._ledger.next_observation()
        if record is None:
            record = InstanceRecord(tenant_id=str(tenant_id), provider=self._ledger.provider)
        changes["last_observation"] = max(record.last_observation, observation)
        return await self._move(record, target, changes, source)

    async def _move(
        self,
        record: InstanceRecord,
        target: InstanceStatus | None,
        changes: dict[str, Any],
        source: EventSource,
        connected_at=None,
    ) -> Transition:
        previous = record.status

        if target is None or target == previous:
            updated = await self._ledger.update(record.tenant_id, **changes)
            return Transition(TransitionOutcome.REFRESHED, record.tenant_id, updated, previous, source)

        if not is_allowed(previous, target):
            logger.info(
                f"[{source.value}] transition {previous.value} -> {target.value} "
                f"not allowed for tenant {record.tenant_id}; metadata refreshed only"
            )
            updated = await self._ledger.update(record.tenant_id, **changes)
            return Transition(TransitionOutcome.REJECTED, record.tenant_id, updated, previous, source)

        changes["status"] = target
        if target == InstanceStatus.CONNECTED:
            changes["connected_at"] = connected_at or utc_now()
        updated = await self._ledger.update(record.tenant_id, **changes)

        transition = Transition(TransitionOutcome.TRANSITIONED, record.tenant_id, updated, previous, source)
        logger.info(f"[{source.value}] tenant {record.tenant_id}: {previous.value} -> {target.value}")
        self._notifier.dispatch(transition)
        return transition
