# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Factory para construir el adaptador del proveedor configurado.
#              Se elige una sola vez al arrancar la aplicación.
# ============================================================================
"""
Provider Adapter Factory.

Single Responsibility: Build the configured ProviderAdapter from settings.

Usage:
    adapter = create_provider_adapter(get_settings())
    await adapter.initialize()
"""

import logging

import httpx

from wa_gateway.config.settings import Settings

from .base import ProviderAdapter
from .candidates import CandidateResolver, EndpointOverride
from .credentials import CredentialPolicy
from .http_client import VendorHttpClient
from .uazapi import UazapiAdapter
from .zapi import ZapiAdapter

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("uazapi", "zapi")
OVERRIDABLE_OPERATIONS = ("create", "disconnect", "qr")


def build_uazapi_overrides(settings: Settings) -> dict[str, EndpointOverride]:
    """Collect configured endpoint overrides keyed by operation."""
    overrides: dict[str, EndpointOverride] = {}
    for operation in OVERRIDABLE_OPERATIONS:
        raw = settings.uazapi_override(operation)
        if raw.path:
            overrides[operation] = EndpointOverride(path=raw.path, method=raw.method, keys=raw.keys)
            logger.info(f"uazapi override for {operation}: {raw.method or 'default'} {raw.path}")
    return overrides


def create_provider_adapter(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """
    Create the adapter selected by `PROVIDER`.

    Args:
        settings: Application settings
        transport: Optional httpx transport (tests)

    Raises:
        ValueError: Unknown provider name
    """
    provider = settings.PROVIDER

    if provider == "uazapi":
        http = VendorHttpClient(
            settings.UAZAPI_BASE_URL,
            timeout=settings.VENDOR_REQUEST_TIMEOUT,
            max_retries=settings.VENDOR_MAX_RETRIES,
            transport=transport,
        )
        resolver = CandidateResolver(
            http,
            candidate_timeout=settings.VENDOR_REQUEST_TIMEOUT,
            deadline=settings.VENDOR_OPERATION_DEADLINE,
        )
        credentials = CredentialPolicy(
            admin_token=settings.UAZAPI_ADMIN_TOKEN,
            global_token=settings.UAZAPI_TOKEN,
            allow_global_fallback=not settings.UAZAPI_DISABLE_GLOBAL_FALLBACK,
        )
        adapter: ProviderAdapter = UazapiAdapter(
            http,
            resolver,
            credentials,
            overrides=build_uazapi_overrides(settings),
            qr_force=settings.UAZAPI_QR_FORCE,
        )
    elif provider == "zapi":
        http = VendorHttpClient(
            settings.ZAPI_BASE_URL,
            timeout=settings.VENDOR_REQUEST_TIMEOUT,
            max_retries=settings.VENDOR_MAX_RETRIES,
            transport=transport,
        )
        adapter = ZapiAdapter(
            http,
            instance_id=settings.ZAPI_INSTANCE_ID,
            token=settings.ZAPI_TOKEN,
            client_token=settings.ZAPI_CLIENT_TOKEN,
        )
    else:
        raise ValueError(f"Unknown PROVIDER '{provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}")

    logger.info(
        f"Provider adapter '{adapter.name}' ready with capabilities: "
        f"{sorted(c.value for c in adapter.capabilities)}"
    )
    return adapter
