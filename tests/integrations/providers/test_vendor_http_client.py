"""
Tests for VendorHttpClient error mapping and retry.
"""

import httpx
import pytest

from wa_gateway.integrations.providers.exceptions import (
    SessionNotFoundError,
    VendorRejectedError,
    VendorUnreachableError,
)
from wa_gateway.integrations.providers.http_client import VendorHttpClient


def _client(handler, **kwargs) -> VendorHttpClient:
    return VendorHttpClient(
        "https://vendor.test/",
        transport=httpx.MockTransport(handler),
        base_delay=0,
        jitter=0,
        **kwargs,
    )


class TestRequest:
    """Tests for single-attempt requests."""

    @pytest.mark.asyncio
    async def test_json_body_is_returned(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "connected"}))

        assert await client.request("GET", "/instance/status") == {"status": "connected"}
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_and_text_bodies(self):
        responses = iter([httpx.Response(200), httpx.Response(200, text="OK")])
        client = _client(lambda request: next(responses))

        assert await client.request("POST", "/a") == {}
        assert await client.request("POST", "/a") == {"raw": "OK"}
        await client.close()

    @pytest.mark.asyncio
    async def test_404_maps_to_session_not_found(self):
        client = _client(lambda request: httpx.Response(404, json={"error": "no session"}))

        with pytest.raises(SessionNotFoundError) as exc_info:
            await client.request("GET", "/instance/status")

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == {"error": "no session"}
        await client.close()

    @pytest.mark.asyncio
    async def test_401_maps_to_rejected(self):
        client = _client(lambda request: httpx.Response(401, json={"error": "bad token"}))

        with pytest.raises(VendorRejectedError) as exc_info:
            await client.request("POST", "/send/text")

        assert exc_info.value.status_code == 401
        assert not isinstance(exc_info.value, SessionNotFoundError)
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(VendorUnreachableError):
            await client.request("GET", "/instance/status")
        await client.close()

    def test_build_url(self):
        client = VendorHttpClient("https://vendor.test/")

        assert client.build_url("instance/status") == "https://vendor.test/instance/status"
        assert client.build_url("https://other.test/x") == "https://other.test/x"


class TestRequestWithRetry:
    """Tests for 5xx retry with backoff."""

    @pytest.mark.asyncio
    async def test_retries_5xx_then_succeeds(self):
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"id": "m1"})])
        client = _client(lambda request: next(responses), max_retries=3)

        assert await client.request_with_retry("POST", "/send/text", json={"text": "hi"}) == {"id": "m1"}
        await client.close()

    @pytest.mark.asyncio
    async def test_4xx_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad number"})

        client = _client(handler, max_retries=3)

        with pytest.raises(VendorRejectedError):
            await client.request_with_retry("POST", "/send/text")

        assert len(calls) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = _client(handler, max_retries=3)

        with pytest.raises(VendorRejectedError) as exc_info:
            await client.request_with_retry("POST", "/send/text")

        assert exc_info.value.status_code == 503
        assert len(calls) == 3
        await client.close()
