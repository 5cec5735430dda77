"""
Shared pytest fixtures for all tests.

Provides settings, a scriptable in-memory provider adapter, a recording
httpx transport and an orchestrator builder wired to in-memory stores.
"""

import asyncio
import os
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from wa_gateway.config.settings import Settings
from wa_gateway.integrations.providers.base import (
    Capability,
    ConnectOutcome,
    CreatedSession,
    ProviderAdapter,
    QrCode,
    SessionStatus,
    WebhookConfiguration,
)
from wa_gateway.integrations.providers.credentials import CredentialPolicy
from wa_gateway.repositories.instance_store import InMemoryInstanceStore
from wa_gateway.services.instance import (
    ConnectionStateMachine,
    InMemoryTenantDirectory,
    InstanceLedger,
    InstanceOrchestrator,
    RealtimeNotifier,
    TenantProfile,
    TokenResolver,
)

# Ensure test environment
os.environ["ENVIRONMENT"] = "test"

VENDOR_URL = "https://vendor.test"
QR_DATA_URL = "data:image/png;base64,iVBORw0KGgo="
TENANT_ID = "42"


# ============================================================================
# SETTINGS
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment and .env files."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PROVIDER="uazapi",
        UAZAPI_BASE_URL=VENDOR_URL,
        UAZAPI_ADMIN_TOKEN="admin-secret-0001",
        UAZAPI_TOKEN="global-secret-0001",
        VENDOR_MAX_RETRIES=3,
    )


# ============================================================================
# HTTP TRANSPORT
# ============================================================================


class RecordingTransport:
    """
    httpx.MockTransport wrapper that records every request.

    `routes` maps (METHOD, path) to a JSON payload, a status code or a
    callable returning an httpx.Response; unmatched requests get
    `default_status`.
    """

    def __init__(self, default_status: int = 404) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Any] = {}
        self.default_status = default_status
        self.transport = httpx.MockTransport(self._handle)

    def add(self, method: str, path: str, response: Any) -> None:
        self.routes[(method.upper(), path)] = response

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(self.default_status, json={"error": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, int):
            return httpx.Response(route, json={"error": f"status {route}"})
        return httpx.Response(200, json=route)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


# ============================================================================
# FAKE PROVIDER ADAPTER
# ============================================================================


class FakeAdapter(ProviderAdapter):
    """
    Scriptable in-memory adapter.

    Tracks a single vendor-side session whose connection state tests flip
    through `connected`. Every call is recorded in `calls`.
    """

    name = "fake"
    capabilities = frozenset(Capability)
    session_scoped = True

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.create_token: str | None = "tok-created-0001"
        self.listed_tokens: dict[str, str] = {}
        self.connected = False
        self.qr_available = True
        self.connect_returns_qr = True
        self.create_delay = 0.0
        self.status_error: Exception | None = None
        self.create_error: Exception | None = None
        self.sent: list[tuple[Any, ...]] = []

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def create_session(self, session_name: str, token: str | None = None) -> CreatedSession:
        self.calls.append(("create", session_name))
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_error:
            raise self.create_error
        return CreatedSession(session_name=session_name, token=self.create_token)

    async def resolve_session_token(self, session_name: str) -> str | None:
        self.calls.append(("resolve", session_name))
        return self.listed_tokens.get(session_name)

    async def connect_session(
        self, session_name: str, token: str | None = None, phone: str | None = None
    ) -> ConnectOutcome:
        self.calls.append(("connect", session_name, token, phone))
        if self.connected:
            return ConnectOutcome(connected=True)
        qr = QrCode(qr=QR_DATA_URL, format="dataurl") if self.connect_returns_qr and self.qr_available else None
        return ConnectOutcome(connected=False, qr=qr, pair_code="ABCD-1234" if phone else None)

    async def disconnect_session(self, session_name: str, token: str | None = None) -> Any:
        self.calls.append(("disconnect", session_name, token))
        self.connected = False
        return {"ok": True}

    async def get_session_status(self, session_name: str, token: str | None = None) -> SessionStatus:
        self.calls.append(("status", session_name, token))
        if self.status_error:
            raise self.status_error
        if self.connected:
            return SessionStatus(connected=True, state="connected", device_name="Pixel 8", phone_number="5511999990000")
        return SessionStatus(
            connected=False,
            state="connecting",
            qr_code=QR_DATA_URL if self.qr_available else None,
        )

    async def get_qr_code(self, session_name: str, token: str | None = None, force: bool = False) -> QrCode:
        self.calls.append(("qr", session_name, force))
        if self.connected:
            return QrCode(qr=None, connected=True, device_name="Pixel 8")
        if self.qr_available:
            return QrCode(qr=QR_DATA_URL, format="dataurl")
        return QrCode(qr=None)

    async def send_text(self, session_name, message, token=None) -> Any:
        self.sent.append(("text", session_name, message.phone, token))
        return {"id": "msg-1"}

    async def send_carousel(self, session_name, message, token=None) -> Any:
        self.sent.append(("carousel", session_name, message.phone, token))
        return {"id": "msg-2"}

    async def configure_webhook(self, webhook_url: str, token: str | None = None) -> WebhookConfiguration:
        self.calls.append(("webhook", webhook_url))
        return WebhookConfiguration(webhook_url=webhook_url, applied=True)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


# ============================================================================
# ORCHESTRATION
# ============================================================================


@pytest.fixture
def directory() -> InMemoryTenantDirectory:
    return InMemoryTenantDirectory([TenantProfile(id=TENANT_ID, username="Acme Store")])


@pytest.fixture
def build_orchestrator(
    fake_adapter: FakeAdapter, directory: InMemoryTenantDirectory
) -> Callable[..., InstanceOrchestrator]:
    """Factory for orchestrators over in-memory stores."""

    def _build(
        adapter: ProviderAdapter | None = None,
        manual_mode: bool = False,
        webhook_secret: str | None = None,
        policy: CredentialPolicy | None = None,
        tenant_directory: InMemoryTenantDirectory | None = None,
    ) -> InstanceOrchestrator:
        adapter = adapter or fake_adapter
        tenants = directory if tenant_directory is None else tenant_directory
        ledger = InstanceLedger(InMemoryInstanceStore(), adapter.name, tenants)
        notifier = RealtimeNotifier()
        return InstanceOrchestrator(
            adapter=adapter,
            ledger=ledger,
            directory=tenants,
            token_resolver=TokenResolver(
                adapter, ledger, policy or CredentialPolicy(global_token="global-secret-0001")
            ),
            state_machine=ConnectionStateMachine(ledger, notifier),
            notifier=notifier,
            manual_mode=manual_mode,
            webhook_secret=webhook_secret,
        )

    return _build


@pytest.fixture
def orchestrator(build_orchestrator) -> InstanceOrchestrator:
    return build_orchestrator()


class RecordingChannel:
    """Push channel double that stores every message."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)

    def events(self) -> list[str]:
        return [m["type"] for m in self.messages]


@pytest.fixture
def make_channel() -> Callable[..., RecordingChannel]:
    return RecordingChannel
