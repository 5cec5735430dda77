# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Integración con proveedores de automatización de WhatsApp.
# ============================================================================
"""
Provider Integration Module.

Components:
- base.py: ProviderAdapter contract, Capability set, vendor-agnostic results
- candidates.py: CandidateResolver (endpoint discovery)
- credentials.py: CredentialPolicy (auth precedence), secret masking
- extraction.py: field extraction rules for vendor payloads
- http_client.py: VendorHttpClient (httpx + tenacity)
- uazapi.py / zapi.py: concrete adapters
- factory.py: create_provider_adapter()
"""

from .base import (
    ButtonType,
    Capability,
    CarouselButton,
    CarouselCard,
    CarouselMessage,
    ConnectOutcome,
    CreatedSession,
    OutboundMessage,
    ProviderAdapter,
    QrCode,
    SessionStatus,
    TextMessage,
    WebhookConfiguration,
)
from .candidates import AttemptOutcome, CandidateAttempt, CandidateResolver, EndpointCandidate, EndpointOverride
from .credentials import Credential, CredentialPolicy, CredentialSource, mask_secret
from .exceptions import (
    CandidatesExhaustedError,
    CredentialsMissingError,
    GatewayError,
    SessionNotFoundError,
    UnsupportedOperationError,
    VendorError,
    VendorRejectedError,
    VendorUnreachableError,
)
from .factory import create_provider_adapter
from .http_client import VendorHttpClient

__all__ = [
    "AttemptOutcome",
    "ButtonType",
    "CandidateAttempt",
    "CandidateResolver",
    "CandidatesExhaustedError",
    "Capability",
    "CarouselButton",
    "CarouselCard",
    "CarouselMessage",
    "ConnectOutcome",
    "CreatedSession",
    "Credential",
    "CredentialPolicy",
    "CredentialSource",
    "CredentialsMissingError",
    "EndpointCandidate",
    "EndpointOverride",
    "GatewayError",
    "OutboundMessage",
    "ProviderAdapter",
    "QrCode",
    "SessionNotFoundError",
    "SessionStatus",
    "TextMessage",
    "UnsupportedOperationError",
    "VendorError",
    "VendorHttpClient",
    "VendorRejectedError",
    "VendorUnreachableError",
    "WebhookConfiguration",
    "create_provider_adapter",
    "mask_secret",
]
