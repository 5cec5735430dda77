# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Excepciones para las integraciones con proveedores de WhatsApp.
# ============================================================================
"""
Provider Integration Exceptions.

Single Responsibility: Define exception types for vendor operations.

Every failure a vendor adapter can surface maps onto one of these kinds,
so the API layer can branch on the type instead of on message text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .candidates import CandidateAttempt


class GatewayError(Exception):
    """Base class for every error the gateway reports to its callers."""

    kind = "gateway_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class VendorError(GatewayError):
    """Error talking to the vendor API."""

    kind = "vendor_error"


class CredentialsMissingError(VendorError):
    """No bearer credential could be resolved for the call."""

    kind = "credentials_missing"


class VendorUnreachableError(VendorError):
    """Network level failure (DNS, connect, read timeout)."""

    kind = "vendor_unreachable"


class VendorRejectedError(VendorError):
    """
    The vendor answered with an HTTP error.

    Carries the vendor status code and body for operator diagnosis.
    """

    kind = "vendor_rejected"

    def __init__(self, message: str, status_code: int, body: Any = None) -> None:
        super().__init__(message, vendor_status=status_code, vendor_body=body)
        self.status_code = status_code
        self.body = body


class SessionNotFoundError(VendorRejectedError):
    """The vendor does not know the requested session (HTTP 404)."""

    kind = "not_found"


class UnsupportedOperationError(VendorError):
    """The configured adapter lacks the requested capability."""

    kind = "unsupported_operation"

    def __init__(self, operation: str, provider: str | None = None) -> None:
        who = f" by provider '{provider}'" if provider else ""
        super().__init__(f"Operation '{operation}' is not supported{who}", operation=operation)
        self.operation = operation
        self.provider = provider


class CandidatesExhaustedError(VendorError):
    """
    Every endpoint candidate for an operation failed.

    The message names the last URL tried and the last underlying error;
    the full attempt list is kept on `attempts` for diagnostics.
    """

    kind = "candidates_exhausted"

    def __init__(
        self,
        operation: str,
        attempts: list[CandidateAttempt],
        last_error: Exception | None = None,
        reason: str | None = None,
    ) -> None:
        last_url = attempts[-1].url if attempts else None
        detail = reason or (str(last_error) if last_error else "no candidates")
        message = f"{operation} failed: {detail} (last URL: {last_url or 'n/a'})"
        super().__init__(
            message,
            operation=operation,
            attempts=[attempt.to_dict() for attempt in attempts],
        )
        self.operation = operation
        self.attempts = attempts
        self.last_url = last_url
        self.last_error = last_error
