# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Orquestador de conexión de instancias. Punto de entrada de las
#              operaciones por tenant (crear, vincular, conectar, estado, QR,
#              desconectar, enviar) y del ingreso de webhooks.
# ============================================================================
"""
Instance Connection Orchestrator.

Single Responsibility: Coordinate adapter, token resolver, ledger, state
machine and notifier for every tenant-facing operation.

Concurrency:
- Session-creating and session-mutating work (ensure, bind, connect, token
  writes) runs inside the tenant's ledger scope, so concurrent calls for one
  tenant cannot both create a session.
- Read-mostly vendor calls (status, QR, disconnect) run outside the scope;
  their results are applied afterwards under the scope, tagged with the
  observation taken when the check started.
- Failed operations are not retried here; retrying is the caller's decision.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from wa_gateway.integrations.providers.base import (
    Capability,
    CarouselMessage,
    OutboundMessage,
    ProviderAdapter,
    QrCode,
    TextMessage,
    WebhookConfiguration,
)
from wa_gateway.integrations.providers.exceptions import CredentialsMissingError, VendorError
from wa_gateway.integrations.providers.extraction import AWAITING_QR_STATES, DISCONNECTED_STATES
from wa_gateway.models.instance import ConnectionEvent, EventSource, InstanceRecord, InstanceStatus

from .event_normalizer import normalize_webhook_payload, verify_signature
from .exceptions import SessionNotLinkedError, TenantNotFoundError
from .ledger import InstanceLedger
from .notifier import EVENT_INSTANCE_CONNECTED, RealtimeNotifier, connected_payload
from .state_machine import ConnectionStateMachine, Transition, TransitionOutcome
from .tenant_directory import TenantDirectory, derive_session_name
from .token_resolver import TokenResolver

logger = logging.getLogger(__name__)


@dataclass
class EnsureResult:
    record: InstanceRecord
    created: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance": self.record.session_name,
            "created": self.created,
            "token_saved": bool(self.record.session_token),
            "status": self.record.status.value,
        }


@dataclass
class StatusSnapshot:
    """Status as reported to callers; `stale` marks a ledger-only answer."""

    record: InstanceRecord
    vendor_state: str | None = None
    qr: str | None = None
    pair_code: str | None = None
    stale: bool = False
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.record.is_connected

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.record.to_public_dict(),
            "connected": self.connected,
            "vendor_state": self.vendor_state,
            "qrcode": self.qr,
            "paircode": self.pair_code,
            "stale": self.stale,
            "error": self.error,
        }


@dataclass
class QrResult:
    record: InstanceRecord
    qr: QrCode | None = None
    stale: bool = False
    message: str | None = None

    @property
    def qr_available(self) -> bool:
        return bool(self.qr and self.qr.available)

    @property
    def connected(self) -> bool:
        return self.record.is_connected

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "instance": self.record.session_name,
            "status": self.record.status.value,
            "connected": self.connected,
            "qrAvailable": self.qr_available,
            "stale": self.stale,
            "message": self.message,
        }
        if self.qr_available and self.qr is not None:
            data.update({"qr": self.qr.qr, "format": self.qr.format, "url": self.qr.url})
        return data


@dataclass
class ConnectResult:
    record: InstanceRecord
    connected: bool
    qr: QrCode | None = None
    pair_code: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "instance": self.record.session_name,
            "status": self.record.status.value,
            "connected": self.connected,
            "paircode": self.pair_code,
            "qrAvailable": bool(self.qr and self.qr.available),
            "message": self.message,
        }
        if self.qr and self.qr.available:
            data.update({"qr": self.qr.qr, "format": self.qr.format, "url": self.qr.url})
        return data


@dataclass
class WebhookAck:
    """Acknowledgement returned to the vendor (always HTTP 200)."""

    accepted: bool
    reason: str | None = None
    status: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": True, "ignored": not self.accepted}
        if self.reason:
            data["reason"] = self.reason
        if self.status:
            data["status"] = self.status
        return data


class InstanceOrchestrator:
    """
    Vendor-agnostic operations over a tenant's session.

    The adapter is chosen once at startup and injected; the orchestrator
    never inspects which vendor it is talking to beyond its capabilities.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        ledger: InstanceLedger,
        directory: TenantDirectory,
        token_resolver: TokenResolver,
        state_machine: ConnectionStateMachine,
        notifier: RealtimeNotifier,
        manual_mode: bool = False,
        webhook_secret: str | None = None,
        message_status_path: str = "/api/v1/webhooks/message-status",
    ) -> None:
        self.adapter = adapter
        self.ledger = ledger
        self.directory = directory
        self.token_resolver = token_resolver
        self.state_machine = state_machine
        self.notifier = notifier
        self.manual_mode = manual_mode
        self._webhook_secret = webhook_secret
        self._message_status_path = message_status_path
        # Tenants waiting for a QR scan; the background poller watches them
        self.watched: set[str] = set()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def get_record(self, tenant_id: str) -> InstanceRecord:
        """Ledger snapshot without contacting the vendor."""
        async with self.ledger.scope(tenant_id):
            record = await self.ledger.get(tenant_id)
        if record is None:
            raise SessionNotLinkedError(tenant_id)
        return record

    async def ensure_session(self, tenant_id: str) -> EnsureResult:
        """
        Make sure the tenant has a vendor session, creating it when missing.

        Exactly one createSession call is issued even under concurrent calls
        for the same tenant.
        """
        async with self.ledger.scope(tenant_id):
            return await self._ensure_locked(tenant_id)

    async def _ensure_locked(self, tenant_id: str) -> EnsureResult:
        record = await self.ledger.get(tenant_id)
        if record is not None and record.session_name:
            if self.adapter.session_scoped and not record.session_token:
                await self.token_resolver.scan(record)
            return EnsureResult(record=record, created=False)

        if self.manual_mode:
            raise SessionNotLinkedError(tenant_id, "manual instance mode is on, bind an existing session")

        self.adapter.require(Capability.CREATE_SESSION)
        tenant = await self.directory.find_tenant(tenant_id) or await self.directory.register_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        session_name = derive_session_name(tenant.username, tenant_id)
        logger.info(f"Creating session '{session_name}' for tenant {tenant_id}")
        created = await self.adapter.create_session(session_name)

        transition = await self.state_machine.transition(
            tenant_id,
            InstanceStatus.CREATED,
            session_name=session_name,
            session_token=created.token,
        )
        record = transition.record
        if record is None:
            raise SessionNotLinkedError(tenant_id, "session was created but the ledger has no record")

        if not record.session_token:
            await self.token_resolver.scan(record)
        return EnsureResult(record=record, created=True)

    async def bind_session(self, tenant_id: str, session_name: str, token: str | None = None) -> EnsureResult:
        """
        Link the tenant to an existing vendor session.

        Rebinding to a different session drops the old token and resets the
        record to `created`. Without a token, one is looked up on the vendor.
        """
        session_name = session_name.strip()
        if not session_name:
            raise ValueError("session name must not be empty")

        async with self.ledger.scope(tenant_id):
            record = await self.ledger.get(tenant_id)

            if record is None or record.status == InstanceStatus.UNLINKED:
                transition = await self.state_machine.transition(
                    tenant_id,
                    InstanceStatus.CREATED,
                    session_name=session_name,
                    session_token=token,
                )
                record = transition.record
            elif record.session_name != session_name:
                await self.ledger.clear_token(tenant_id)
                record = await self.ledger.update(
                    tenant_id,
                    session_name=session_name,
                    session_token=token,
                    status=InstanceStatus.CREATED,
                    connected_at=None,
                    device_name=None,
                    phone_number=None,
                    last_observation=self.ledger.next_observation(),
                )
                self.watched.discard(str(tenant_id))
            else:
                record = await self.ledger.update(tenant_id, session_token=token)

            if record is None:
                raise SessionNotLinkedError(tenant_id, f"binding to '{session_name}' was not recorded")
            if not record.session_token and self.adapter.session_scoped:
                await self.token_resolver.scan(record)

        logger.info(f"Tenant {tenant_id} bound to session '{session_name}' (token saved: {bool(record.session_token)})")
        return EnsureResult(record=record, created=False)

    async def connect(self, tenant_id: str, phone: str | None = None) -> ConnectResult:
        """
        Start the vendor connection flow.

        Creates the session on demand. Returns immediately when the vendor
        already reports the session connected; otherwise the record moves to
        `awaiting_qr` and a QR is returned when one is available.
        """
        self.adapter.require(Capability.CONNECT_SESSION)

        async with self.ledger.scope(tenant_id):
            record = (await self._ensure_locked(tenant_id)).record
            credential = await self.token_resolver.resolve(record)
            session_name = record.session_name
            observation = self.ledger.next_observation()
            outcome = await self.adapter.connect_session(session_name, credential.value, phone)

            if outcome.connected:
                transition = await self.state_machine.apply(
                    ConnectionEvent(
                        tenant_id=tenant_id,
                        reported_status="connected",
                        source=EventSource.API,
                        observation=observation,
                    )
                )
            else:
                transition = await self.state_machine.transition(
                    tenant_id, InstanceStatus.AWAITING_QR, observation=observation
                )
            record = transition.record or record

        self._track(record)
        if outcome.connected:
            return ConnectResult(record=record, connected=True, message="Instance already connected")

        qr = outcome.qr
        message = None
        if qr is None and self.adapter.supports(Capability.GET_QR_CODE):
            try:
                qr = await self.adapter.get_qr_code(session_name, credential.value, force=True)
            except VendorError as e:
                logger.warning(f"QR fetch after connect failed for tenant {tenant_id}: {e}")
                message = f"Connection started but QR is not available yet: {e.message}"

        return ConnectResult(
            record=record,
            connected=False,
            qr=qr if qr and qr.available else None,
            pair_code=outcome.pair_code,
            message=message,
        )

    async def disconnect(self, tenant_id: str) -> InstanceRecord:
        """Log the session out on the vendor and mark it `disconnected`."""
        self.adapter.require(Capability.DISCONNECT_SESSION)
        record, credential_value = await self._linked_credential(tenant_id)
        observation = self.ledger.next_observation()

        await self.adapter.disconnect_session(record.session_name, credential_value)

        async with self.ledger.scope(tenant_id):
            transition = await self.state_machine.transition(
                tenant_id, InstanceStatus.DISCONNECTED, observation=observation
            )
        record = transition.record or record
        self._track(record)
        return record

    # ------------------------------------------------------------------
    # Status & QR
    # ------------------------------------------------------------------

    async def get_status(
        self,
        tenant_id: str,
        *,
        notify: bool = False,
        source: EventSource = EventSource.POLL,
    ) -> StatusSnapshot:
        """
        Poll the vendor and fold the result into the ledger.

        A failing vendor call returns the last known ledger state marked
        stale. With `notify`, a connected snapshot is pushed to the tenant's
        channel even without a transition.
        """
        self.adapter.require(Capability.GET_SESSION_STATUS)
        record, credential_value = await self._linked_credential(tenant_id)
        observation = self.ledger.next_observation()

        try:
            status = await self.adapter.get_session_status(record.session_name, credential_value)
        except VendorError as e:
            logger.warning(f"Status check for tenant {tenant_id} failed, serving ledger state: {e}")
            return StatusSnapshot(record=record, stale=True, error=e.message)

        if status.connected:
            reported = "connected"
        elif status.state in DISCONNECTED_STATES and not status.qr_code:
            reported = status.state
        elif status.qr_code or status.state in AWAITING_QR_STATES:
            reported = "qr"
        else:
            reported = None

        async with self.ledger.scope(tenant_id):
            transition = await self.state_machine.apply(
                ConnectionEvent(
                    tenant_id=tenant_id,
                    reported_status=reported,
                    device_name=status.device_name,
                    phone_number=status.phone_number,
                    source=source,
                    observation=observation,
                )
            )
        record = transition.record or record
        self._track(record)

        # An accepted transition was already dispatched by the state machine
        if notify and record.is_connected and not transition.changed:
            self.notifier.publish_nowait(record.tenant_id, EVENT_INSTANCE_CONNECTED, connected_payload(record))

        return StatusSnapshot(
            record=record,
            vendor_state=status.state,
            qr=status.qr_code,
            pair_code=status.pair_code,
            stale=transition.outcome == TransitionOutcome.STALE,
        )

    async def get_qr_code(self, tenant_id: str, force: bool = False) -> QrResult:
        """
        Fetch a QR for the tenant's session.

        When the vendor reports the session connected without a QR, the
        session is disconnected and queried again, ending with either a fresh
        QR or a connected record with no QR available.
        """
        self.adapter.require(Capability.GET_QR_CODE)
        record, credential_value = await self._linked_credential(tenant_id)
        session_name = record.session_name
        observation = self.ledger.next_observation()

        try:
            qr = await self.adapter.get_qr_code(session_name, credential_value, force=force)
        except VendorError as e:
            logger.warning(f"QR fetch for tenant {tenant_id} failed, serving ledger state: {e}")
            return QrResult(record=record, stale=True, message=e.message)

        if qr.available:
            record = await self._observe(tenant_id, "qr", qr, observation) or record
            return QrResult(record=record, qr=qr)

        if not qr.connected:
            return QrResult(record=record, qr=qr, message="QR code not available yet")

        record = await self._observe(tenant_id, "connected", qr, observation) or record
        if not self.adapter.supports(Capability.DISCONNECT_SESSION):
            return QrResult(record=record, message="Instance already connected")

        logger.info(f"Session '{session_name}' reports connected without QR; disconnecting to get a fresh QR")
        observation = self.ledger.next_observation()
        try:
            await self.adapter.disconnect_session(session_name, credential_value)
        except VendorError as e:
            logger.warning(f"Automatic disconnect for tenant {tenant_id} failed: {e}")
            return QrResult(record=record, message="Instance already connected")

        async with self.ledger.scope(tenant_id):
            transition = await self.state_machine.transition(
                tenant_id, InstanceStatus.DISCONNECTED, observation=observation
            )
        record = transition.record or record

        observation = self.ledger.next_observation()
        try:
            fresh = await self.adapter.get_qr_code(session_name, credential_value, force=True)
        except VendorError as e:
            logger.warning(f"QR refetch for tenant {tenant_id} failed: {e}")
            return QrResult(record=record, message=f"Disconnected but QR refetch failed: {e.message}")

        if fresh.available:
            record = await self._observe(tenant_id, "qr", fresh, observation) or record
            return QrResult(record=record, qr=fresh)
        if fresh.connected:
            record = await self._observe(tenant_id, "connected", fresh, observation) or record
        return QrResult(record=record, qr=fresh, message="QR code not available yet")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send(self, tenant_id: str, message: OutboundMessage) -> Any:
        """
        Send a message through the tenant's session.

        Never falls back to the global credential: a tenant without a
        resolvable session token gets CredentialsMissingError.
        """
        capability = Capability.SEND_CAROUSEL if isinstance(message, CarouselMessage) else Capability.SEND_TEXT
        self.adapter.require(capability)

        session_name: str | None = None
        token: str | None = None
        if self.adapter.session_scoped:
            async with self.ledger.scope(tenant_id):
                record = await self._record_for_send(tenant_id)
                credential = await self.token_resolver.resolve(record, allow_global_fallback=False)
            session_name, token = record.session_name, credential.value

        if isinstance(message, CarouselMessage):
            return await self.adapter.send_carousel(session_name, message, token)
        if isinstance(message, TextMessage):
            return await self.adapter.send_text(session_name, message, token)
        raise TypeError(f"Unsupported message type: {type(message).__name__}")

    async def _record_for_send(self, tenant_id: str) -> InstanceRecord:
        if not self.manual_mode and self.adapter.supports(Capability.CREATE_SESSION):
            try:
                return (await self._ensure_locked(tenant_id)).record
            except VendorError as e:
                logger.warning(f"Could not ensure session for tenant {tenant_id} before send: {e}")

        record = await self.ledger.get(tenant_id)
        if record is None or not record.is_linked:
            raise CredentialsMissingError(
                f"Tenant {tenant_id} has no session token: create or bind an instance first",
                tenant_id=tenant_id,
            )
        return record

    async def configure_webhook(self, public_base_url: str) -> WebhookConfiguration:
        """Point the vendor's message-status webhook at this gateway."""
        self.adapter.require(Capability.CONFIGURE_WEBHOOK)
        webhook_url = f"{public_base_url.rstrip('/')}{self._message_status_path}"
        return await self.adapter.configure_webhook(webhook_url)

    # ------------------------------------------------------------------
    # Webhook ingress
    # ------------------------------------------------------------------

    async def handle_inbound_event(
        self,
        tenant_id: str,
        raw_payload: bytes | str | Mapping[str, Any],
        signature: str | None = None,
    ) -> WebhookAck:
        """
        Apply a vendor webhook to the tenant's record.

        Never raises for bad input: unsigned, unparseable, status-less,
        mismatched and stale events are acknowledged as ignored.
        """
        tenant_id = str(tenant_id)
        observation = self.ledger.next_observation()

        if isinstance(raw_payload, Mapping):
            body = json.dumps(raw_payload, separators=(",", ":")).encode()
        else:
            body = raw_payload.encode() if isinstance(raw_payload, str) else raw_payload

        if not verify_signature(self._webhook_secret, signature, body):
            logger.warning(f"Webhook for tenant {tenant_id} ignored: invalid or missing signature")
            return WebhookAck(accepted=False, reason="invalid_signature")

        payload: Any = raw_payload
        if not isinstance(raw_payload, Mapping):
            try:
                payload = json.loads(body or b"null")
            except ValueError:
                payload = None
        if not isinstance(payload, Mapping):
            logger.warning(f"Webhook for tenant {tenant_id} ignored: unparseable body")
            return WebhookAck(accepted=False, reason="unparseable")

        event = normalize_webhook_payload(tenant_id, payload, observation=observation)
        if event is None:
            logger.info(f"Webhook for tenant {tenant_id} ignored: no status field")
            return WebhookAck(accepted=False, reason="no_status")

        async with self.ledger.scope(tenant_id):
            transition = await self.state_machine.apply(event)
        if transition.record is not None:
            self._track(transition.record)

        return self._ack(transition, event)

    @staticmethod
    def _ack(transition: Transition, event: ConnectionEvent) -> WebhookAck:
        status = transition.status.value if transition.status else None
        if transition.outcome in (TransitionOutcome.TRANSITIONED, TransitionOutcome.REFRESHED):
            return WebhookAck(accepted=True, status=status)
        return WebhookAck(
            accepted=False,
            reason=transition.outcome.value,
            status=status,
            details={"reported_status": event.reported_status, "session_hint": event.session_hint},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _linked_credential(self, tenant_id: str) -> tuple[InstanceRecord, str | None]:
        """Linked record and its credential (None for adapters without session tokens)."""
        async with self.ledger.scope(tenant_id):
            record = await self.ledger.get(tenant_id)
            if record is None or not record.is_linked:
                raise SessionNotLinkedError(tenant_id)
            if not self.adapter.session_scoped:
                return record, None
            credential = await self.token_resolver.resolve(record)
        return record, credential.value

    async def _observe(
        self,
        tenant_id: str,
        reported_status: str,
        qr: QrCode,
        observation: int,
    ) -> InstanceRecord | None:
        async with self.ledger.scope(tenant_id):
            transition = await self.state_machine.apply(
                ConnectionEvent(
                    tenant_id=tenant_id,
                    reported_status=reported_status,
                    device_name=qr.device_name,
                    phone_number=qr.phone_number,
                    source=EventSource.POLL,
                    observation=observation,
                )
            )
        if transition.record is not None:
            self._track(transition.record)
        return transition.record

    def _track(self, record: InstanceRecord) -> None:
        if record.status == InstanceStatus.AWAITING_QR:
            self.watched.add(record.tenant_id)
        else:
            self.watched.discard(record.tenant_id)
