# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Contrato común de adaptadores de proveedores WhatsApp.
# ============================================================================
"""
Provider adapter contract.

Single Responsibility: Define the vendor-agnostic capability set and results
the orchestrator is polymorphic over.

Adapters implement a subset of the capabilities. A missing capability is
queryable through `supports()` and raises UnsupportedOperationError when
invoked anyway.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import UnsupportedOperationError


class Capability(str, Enum):
    """Operations a vendor adapter may implement."""

    SEND_TEXT = "sendText"
    SEND_CAROUSEL = "sendCarousel"
    CONFIGURE_WEBHOOK = "configureWebhook"
    CREATE_SESSION = "createSession"
    CONNECT_SESSION = "connectSession"
    DISCONNECT_SESSION = "disconnectSession"
    GET_SESSION_STATUS = "getSessionStatus"
    GET_QR_CODE = "getQrCode"
    RESOLVE_SESSION_TOKEN = "resolveSessionToken"


class ButtonType(str, Enum):
    """Carousel button kinds."""

    REPLY = "REPLY"
    URL = "URL"
    CALL = "CALL"
    COPY = "COPY"


@dataclass
class CarouselButton:
    text: str
    type: ButtonType = ButtonType.REPLY
    id: str | None = None
    url: str | None = None
    phone: str | None = None
    copy_text: str | None = None

    def target(self) -> str:
        """Value the vendor expects in the button id slot for this kind."""
        if self.type == ButtonType.URL:
            return self.url or self.id or ""
        if self.type == ButtonType.CALL:
            return self.phone or self.id or ""
        if self.type == ButtonType.COPY:
            return self.copy_text or self.id or ""
        return self.id or self.text


@dataclass
class CarouselCard:
    text: str
    image: str | None = None
    buttons: list[CarouselButton] = field(default_factory=list)


@dataclass
class TextMessage:
    phone: str
    text: str


@dataclass
class CarouselMessage:
    phone: str
    text: str
    cards: list[CarouselCard] = field(default_factory=list)
    delay_seconds: int = 0


OutboundMessage = TextMessage | CarouselMessage


@dataclass
class CreatedSession:
    session_name: str
    token: str | None = None
    raw: Any = None


@dataclass
class SessionStatus:
    """Vendor-agnostic session status."""

    connected: bool
    state: str | None = None
    logged_in: bool | None = None
    device_name: str | None = None
    phone_number: str | None = None
    qr_code: str | None = None
    qr_format: str | None = None
    pair_code: str | None = None
    raw: Any = None


@dataclass
class QrCode:
    """QR lookup result; `qr` is None when the vendor returned none."""

    qr: str | None
    format: str | None = None
    url: str | None = None
    connected: bool = False
    device_name: str | None = None
    phone_number: str | None = None
    endpoint: str | None = None
    raw: Any = None

    @property
    def available(self) -> bool:
        return bool(self.qr or self.url)


@dataclass
class ConnectOutcome:
    connected: bool
    qr: QrCode | None = None
    pair_code: str | None = None
    raw: Any = None


@dataclass
class WebhookConfiguration:
    webhook_url: str
    applied: bool
    note: str | None = None
    raw: Any = None


class ProviderAdapter:
    """
    Base class for vendor adapters.

    Subclasses declare `capabilities` and override the matching methods.
    Every operation takes a session name and an optional credential override
    and returns a vendor-agnostic result. Adapters never touch the ledger.
    """

    name: str = "base"
    capabilities: frozenset[Capability] = frozenset()
    # Whether calls authenticate with a per-session token
    session_scoped: bool = False

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise UnsupportedOperationError(capability.value, self.name)

    async def initialize(self) -> None:
        """Open network resources."""

    async def close(self) -> None:
        """Release network resources."""

    async def send_text(self, session_name: str | None, message: TextMessage, token: str | None = None) -> Any:
        raise UnsupportedOperationError(Capability.SEND_TEXT.value, self.name)

    async def send_carousel(
        self, session_name: str | None, message: CarouselMessage, token: str | None = None
    ) -> Any:
        raise UnsupportedOperationError(Capability.SEND_CAROUSEL.value, self.name)

    async def configure_webhook(self, webhook_url: str, token: str | None = None) -> WebhookConfiguration:
        raise UnsupportedOperationError(Capability.CONFIGURE_WEBHOOK.value, self.name)

    async def create_session(self, session_name: str, token: str | None = None) -> CreatedSession:
        raise UnsupportedOperationError(Capability.CREATE_SESSION.value, self.name)

    async def connect_session(
        self, session_name: str, token: str | None = None, phone: str | None = None
    ) -> ConnectOutcome:
        raise UnsupportedOperationError(Capability.CONNECT_SESSION.value, self.name)

    async def disconnect_session(self, session_name: str, token: str | None = None) -> Any:
        raise UnsupportedOperationError(Capability.DISCONNECT_SESSION.value, self.name)

    async def get_session_status(self, session_name: str, token: str | None = None) -> SessionStatus:
        raise UnsupportedOperationError(Capability.GET_SESSION_STATUS.value, self.name)

    async def get_qr_code(self, session_name: str, token: str | None = None, force: bool = False) -> QrCode:
        raise UnsupportedOperationError(Capability.GET_QR_CODE.value, self.name)

    async def resolve_session_token(self, session_name: str) -> str | None:
        raise UnsupportedOperationError(Capability.RESOLVE_SESSION_TOKEN.value, self.name)
