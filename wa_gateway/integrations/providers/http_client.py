# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Cliente HTTP para APIs de proveedores con retry automático.
#              Los errores se traducen a la taxonomía de VendorError.
# ============================================================================
"""
Vendor HTTP Client.

Single Responsibility: Execute HTTP requests against a vendor API and map
transport/HTTP failures onto the vendor error taxonomy.

Retry Strategy:
- request(): single attempt. Used by the candidate resolver, whose candidate
  list is the retry policy.
- request_with_retry(): 5xx retried with exponential backoff + jitter (via
  tenacity). Used for fixed endpoints such as message sending.
- Network failures are never retried here.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .credentials import mask_headers
from .exceptions import SessionNotFoundError, VendorRejectedError, VendorUnreachableError

logger = logging.getLogger(__name__)

# HTTP status codes that warrant retry with exponential backoff
RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, VendorRejectedError) and exc.status_code in RETRYABLE_STATUS_CODES


class VendorHttpClient:
    """
    HTTP client for a vendor API.

    Uses persistent AsyncClient for better performance (connection reuse).
    Every request and response is logged with credential headers masked.
    """

    DEFAULT_TIMEOUT = 15.0

    MAX_RETRIES = 3  # Total attempts for 5xx errors
    BASE_DELAY = 1.0  # Initial delay in seconds
    MAX_DELAY = 30.0  # Maximum delay between retries
    JITTER_MAX = 2.0  # Random jitter up to 2 seconds

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        jitter: float = JITTER_MAX,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize HTTP client.

        Args:
            base_url: Vendor API root; relative paths are resolved against it
            timeout: Default per-request timeout in seconds
            max_retries: Attempts for request_with_retry()
            base_delay: Initial backoff delay in seconds
            jitter: Maximum random jitter added to each backoff
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._jitter = jitter
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    async def initialize(self) -> None:
        """Initialize persistent HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                event_hooks={
                    "request": [self._log_request],
                    "response": [self._log_response],
                },
            )

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "VendorHttpClient":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            await self.initialize()
        return self._client  # type: ignore

    def build_url(self, path: str) -> str:
        """Resolve a vendor path against the base URL (absolute URLs pass through)."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Execute a single request.

        Returns:
            Parsed JSON body, `{}` for empty bodies, `{"raw": text}` otherwise

        Raises:
            VendorUnreachableError: On transport failures and timeouts
            SessionNotFoundError: On HTTP 404
            VendorRejectedError: On any other HTTP status >= 400
        """
        client = await self._ensure_client()
        url = self.build_url(path)
        method = method.upper()

        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as e:
            raise VendorUnreachableError(f"Timeout calling {method} {url}", url=url) from e
        except httpx.TransportError as e:
            raise VendorUnreachableError(f"Network error calling {method} {url}: {e}", url=url) from e

        body = self._parse_body(response)

        if response.status_code == 404:
            raise SessionNotFoundError(f"{method} {url} -> HTTP 404", status_code=404, body=body)
        if response.status_code >= 400:
            raise VendorRejectedError(
                f"{method} {url} -> HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return body

    async def request_with_retry(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Request with automatic retry on 5xx responses.

        Raises:
            VendorRejectedError: On 4xx, or on 5xx after the last attempt
            VendorUnreachableError: On network failures (not retried)
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential_jitter(
                initial=self._base_delay,
                max=self.MAX_DELAY,
                jitter=self._jitter,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        result: Any = None
        async for attempt in retrying:
            with attempt:
                result = await self.request(method, path, headers=headers, json=json, params=params)
        return result

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def _log_request(self, request: httpx.Request) -> None:
        logger.debug(f"[vendor] --> {request.method} {request.url} headers={mask_headers(request.headers)}")

    async def _log_response(self, response: httpx.Response) -> None:
        request = response.request
        level = logging.WARNING if response.status_code >= 400 else logging.DEBUG
        logger.log(level, f"[vendor] <-- {request.method} {request.url} {response.status_code}")
