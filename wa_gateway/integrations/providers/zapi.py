# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Adaptador para Z-API (instancia única configurada por entorno).
# ============================================================================
"""
Z-API Adapter.

Single Responsibility: Send messages and configure webhooks through Z-API.

Z-API instances are provisioned on the vendor panel, so session
administration capabilities are absent.
"""

import logging
from typing import Any

from .base import Capability, CarouselMessage, ProviderAdapter, TextMessage, WebhookConfiguration
from .exceptions import CredentialsMissingError
from .extraction import digits_only
from .http_client import VendorHttpClient

logger = logging.getLogger(__name__)


class ZapiAdapter(ProviderAdapter):
    """Z-API implementation: messaging and webhook configuration only."""

    name = "zapi"
    capabilities = frozenset({Capability.SEND_TEXT, Capability.SEND_CAROUSEL, Capability.CONFIGURE_WEBHOOK})

    def __init__(
        self,
        http: VendorHttpClient,
        instance_id: str | None,
        token: str | None,
        client_token: str | None,
    ) -> None:
        self._http = http
        self._instance_id = instance_id
        self._token = token
        self._client_token = client_token

    async def initialize(self) -> None:
        await self._http.initialize()

    async def close(self) -> None:
        await self._http.close()

    def _instance_path(self, action: str) -> str:
        missing = [
            name
            for name, value in (
                ("ZAPI_INSTANCE_ID", self._instance_id),
                ("ZAPI_TOKEN", self._token),
                ("ZAPI_CLIENT_TOKEN", self._client_token),
            )
            if not value
        ]
        if missing:
            raise CredentialsMissingError(f"Missing Z-API credentials: {', '.join(missing)}")
        return f"/instances/{self._instance_id}/token/{self._token}/{action}"

    def _headers(self) -> dict[str, str]:
        return {"Client-Token": self._client_token or "", "Content-Type": "application/json"}

    async def send_text(self, session_name: str | None, message: TextMessage, token: str | None = None) -> Any:
        path = self._instance_path("send-text")
        payload = {"phone": digits_only(message.phone) or message.phone, "message": message.text}
        return await self._http.request_with_retry("POST", path, headers=self._headers(), json=payload)

    async def send_carousel(
        self, session_name: str | None, message: CarouselMessage, token: str | None = None
    ) -> Any:
        path = self._instance_path("send-carousel")
        payload = {
            "phone": digits_only(message.phone) or message.phone,
            "message": message.text,
            "carousel": [
                {
                    "text": card.text,
                    "image": card.image,
                    "buttons": [
                        {"id": button.target(), "label": button.text, "type": button.type.value}
                        for button in card.buttons
                    ],
                }
                for card in message.cards
            ],
            "delayMessage": max(0, int(message.delay_seconds)),
        }
        return await self._http.request_with_retry("POST", path, headers=self._headers(), json=payload)

    async def configure_webhook(self, webhook_url: str, token: str | None = None) -> WebhookConfiguration:
        path = self._instance_path("update-every-webhooks")
        payload = {"value": webhook_url, "notifySentByMe": True}
        data = await self._http.request_with_retry("PUT", path, headers=self._headers(), json=payload)
        logger.info(f"Z-API webhooks pointed at {webhook_url}")
        return WebhookConfiguration(webhook_url=webhook_url, applied=True, raw=data)
