"""
Instance connection orchestration.

Ledger, token resolution, connection state machine, realtime notifier and
the orchestrator that ties them to a provider adapter.
"""

from .event_normalizer import normalize_webhook_payload, verify_signature
from .exceptions import SessionNotLinkedError, TenantNotFoundError
from .ledger import InstanceLedger, LedgerScopeError
from .notifier import (
    EVENT_INSTANCE_CONNECTED,
    EVENT_INSTANCE_STATUS,
    ChannelRegistry,
    PushChannel,
    RealtimeNotifier,
)
from .orchestrator import (
    ConnectResult,
    EnsureResult,
    InstanceOrchestrator,
    QrResult,
    StatusSnapshot,
    WebhookAck,
)
from .state_machine import ConnectionStateMachine, Transition, TransitionOutcome
from .status_stream import StatusStream
from .tenant_directory import InMemoryTenantDirectory, TenantDirectory, TenantProfile, derive_session_name
from .token_resolver import TokenResolver

__all__ = [
    "ChannelRegistry",
    "ConnectResult",
    "ConnectionStateMachine",
    "EVENT_INSTANCE_CONNECTED",
    "EVENT_INSTANCE_STATUS",
    "EnsureResult",
    "InMemoryTenantDirectory",
    "InstanceLedger",
    "InstanceOrchestrator",
    "LedgerScopeError",
    "PushChannel",
    "QrResult",
    "RealtimeNotifier",
    "SessionNotLinkedError",
    "StatusSnapshot",
    "StatusStream",
    "TenantDirectory",
    "TenantNotFoundError",
    "TenantProfile",
    "TokenResolver",
    "Transition",
    "TransitionOutcome",
    "WebhookAck",
    "derive_session_name",
    "normalize_webhook_payload",
    "verify_signature",
]
