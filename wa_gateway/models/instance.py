# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Modelos del registro de instancia por tenant y de eventos de
#              conexión normalizados.
# ============================================================================
"""
Instance models.

InstanceRecord is the persisted, per-tenant session record; it is
serialized to the instance store with `model_dump(mode="json")`.
ConnectionEvent is the normalized status update folded into it.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InstanceStatus(str, Enum):
    """Connection lifecycle of a tenant's vendor session."""

    UNLINKED = "unlinked"
    CREATED = "created"
    AWAITING_QR = "awaiting_qr"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class EventSource(str, Enum):
    """Where a connection observation came from."""

    POLL = "poll"
    WEBHOOK = "webhook"
    STREAM = "stream"
    API = "api"


class InstanceRecord(BaseModel):
    """
    One tenant's vendor session.

    Attributes:
        tenant_id: Stable tenant identifier
        provider: Vendor identifier
        session_name: Vendor-facing session name, stable once set
        session_token: Bearer credential scoped to the session
        status: Current lifecycle state
        device_name / phone_number: Best-effort vendor metadata
        connected_at: When the session last reached `connected`
        updated_at: Advances on every mutation
        last_observation: Local observation clock of the last applied event
    """

    tenant_id: str
    provider: str
    session_name: str | None = None
    session_token: str | None = None
    status: InstanceStatus = InstanceStatus.UNLINKED
    device_name: str | None = None
    phone_number: str | None = None
    connected_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utc_now)
    last_observation: int = 0

    @field_validator("tenant_id", mode="before")
    @classmethod
    def coerce_tenant_id(cls, value):
        return str(value) if value is not None else value

    @property
    def is_linked(self) -> bool:
        return bool(self.session_name)

    @property
    def is_connected(self) -> bool:
        return self.status == InstanceStatus.CONNECTED

    def to_public_dict(self) -> dict:
        """Snapshot safe for API responses (token reduced to a flag)."""
        return {
            "tenant_id": self.tenant_id,
            "provider": self.provider,
            "session_name": self.session_name,
            "token_saved": bool(self.session_token),
            "status": self.status.value,
            "device_name": self.device_name,
            "phone_number": self.phone_number,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "updated_at": self.updated_at.isoformat(),
        }


class ConnectionEvent(BaseModel):
    """
    Normalized status update from poll, webhook, stream or API calls.

    `observation` is a value of the local observation clock taken when the
    check was *initiated*; events initiated before the last applied one are
    stale.
    """

    tenant_id: str
    reported_status: str | None = None
    session_hint: str | None = None
    device_name: str | None = None
    phone_number: str | None = None
    observed_at: datetime = Field(default_factory=utc_now)
    source: EventSource = EventSource.POLL
    event_type: str | None = None
    observation: int | None = None

    @field_validator("tenant_id", mode="before")
    @classmethod
    def coerce_tenant_id(cls, value):
        return str(value) if value is not None else value

    @field_validator("reported_status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value
