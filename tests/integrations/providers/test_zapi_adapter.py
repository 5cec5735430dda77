"""
Tests for the Z-API adapter.
"""

import json

import pytest

from wa_gateway.integrations.providers.base import Capability, CarouselCard, CarouselMessage, TextMessage
from wa_gateway.integrations.providers.exceptions import CredentialsMissingError, UnsupportedOperationError
from wa_gateway.integrations.providers.http_client import VendorHttpClient
from wa_gateway.integrations.providers.zapi import ZapiAdapter

BASE_PATH = "/instances/inst-1/token/tok-1"


@pytest.fixture
def make_adapter(recording_transport):
    def _make(instance_id="inst-1", token="tok-1", client_token="client-1") -> ZapiAdapter:
        http = VendorHttpClient("https://zapi.test", transport=recording_transport.transport, base_delay=0, jitter=0)
        return ZapiAdapter(http, instance_id=instance_id, token=token, client_token=client_token)

    return _make


class TestZapiAdapter:
    """Tests for ZapiAdapter."""

    def test_capabilities(self, make_adapter):
        adapter = make_adapter()

        assert adapter.supports(Capability.SEND_TEXT)
        assert adapter.supports(Capability.CONFIGURE_WEBHOOK)
        assert not adapter.supports(Capability.CREATE_SESSION)
        assert adapter.session_scoped is False

    @pytest.mark.asyncio
    async def test_send_text(self, make_adapter, recording_transport):
        recording_transport.add("POST", f"{BASE_PATH}/send-text", {"messageId": "z1"})

        result = await make_adapter().send_text(None, TextMessage("+55 11 99999-0000", "hola"))

        request = recording_transport.requests[0]
        assert result == {"messageId": "z1"}
        assert request.headers["Client-Token"] == "client-1"
        assert json.loads(request.content) == {"phone": "5511999990000", "message": "hola"}

    @pytest.mark.asyncio
    async def test_send_carousel_uses_delay_seconds(self, make_adapter, recording_transport):
        recording_transport.add("POST", f"{BASE_PATH}/send-carousel", {"messageId": "z2"})
        message = CarouselMessage("5511999990000", "Ofertas", [CarouselCard(text="A")], delay_seconds=3)

        await make_adapter().send_carousel(None, message)

        assert json.loads(recording_transport.requests[0].content)["delayMessage"] == 3

    @pytest.mark.asyncio
    async def test_missing_configuration(self, make_adapter, recording_transport):
        adapter = make_adapter(client_token=None)

        with pytest.raises(CredentialsMissingError) as exc_info:
            await adapter.send_text(None, TextMessage("5511999990000", "hola"))

        assert "ZAPI_CLIENT_TOKEN" in str(exc_info.value)
        assert recording_transport.requests == []

    @pytest.mark.asyncio
    async def test_session_operations_unsupported(self, make_adapter):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            await make_adapter().create_session("wa-1")

        assert exc_info.value.operation == "createSession"
        assert exc_info.value.provider == "zapi"

    @pytest.mark.asyncio
    async def test_configure_webhook(self, make_adapter, recording_transport):
        recording_transport.add("PUT", f"{BASE_PATH}/update-every-webhooks", {"value": True})

        result = await make_adapter().configure_webhook("https://gw.test/hook")

        assert result.applied is True
        assert json.loads(recording_transport.requests[0].content) == {
            "value": "https://gw.test/hook",
            "notifySentByMe": True,
        }
