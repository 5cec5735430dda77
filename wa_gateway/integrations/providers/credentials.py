# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Precedencia de credenciales para llamadas al proveedor.
# ============================================================================
"""
Credential selection for vendor calls.

Single Responsibility: Decide which bearer credential a vendor call uses.

Precedence:
1. Explicit per-call override
2. Session-scoped cached token
3. Admin credential (administrative calls only)
4. Global fallback credential (can be disabled)
"""

from dataclasses import dataclass
from enum import Enum

from .exceptions import CredentialsMissingError

SENSITIVE_HEADERS = frozenset({"token", "admintoken", "authorization", "client-token"})


class CredentialSource(str, Enum):
    """Where a selected credential came from."""

    OVERRIDE = "override"
    SESSION = "session"
    ADMIN = "admin"
    GLOBAL = "global"


@dataclass(frozen=True)
class Credential:
    """A selected bearer credential and its origin."""

    value: str
    source: CredentialSource

    def __repr__(self) -> str:
        return f"Credential(source={self.source.value}, value={mask_secret(self.value)})"


@dataclass(frozen=True)
class CredentialPolicy:
    """Process-wide credentials configured for one vendor."""

    admin_token: str | None = None
    global_token: str | None = None
    allow_global_fallback: bool = True

    def select(
        self,
        *,
        override: str | None = None,
        session_token: str | None = None,
        administrative: bool = False,
        allow_global_fallback: bool | None = None,
    ) -> Credential:
        """
        Pick the credential for one call.

        Args:
            override: Explicit token supplied by the caller
            session_token: Token cached for the session
            administrative: Whether the call targets an admin endpoint
            allow_global_fallback: Per-call restriction on the global fallback;
                it can only narrow the configured policy, never widen it.

        Raises:
            CredentialsMissingError: When no step yields a credential
        """
        if override:
            return Credential(override, CredentialSource.OVERRIDE)
        if session_token:
            return Credential(session_token, CredentialSource.SESSION)
        if administrative and self.admin_token:
            return Credential(self.admin_token, CredentialSource.ADMIN)

        fallback_allowed = self.allow_global_fallback
        if allow_global_fallback is not None:
            fallback_allowed = fallback_allowed and allow_global_fallback
        if fallback_allowed and self.global_token:
            return Credential(self.global_token, CredentialSource.GLOBAL)

        raise CredentialsMissingError(
            "No credential available for vendor call "
            "(no override, no session token"
            + (", no admin token" if administrative else "")
            + (", global fallback disabled)" if not fallback_allowed else ", no global token)")
        )


def mask_secret(value: str | None) -> str:
    """Mask a secret for logs: first 4 + **** + last 4."""
    if not value:
        return ""
    text = str(value)
    if len(text) <= 8:
        return "****"
    return f"{text[:4]}****{text[-4:]}"


def mask_headers(headers) -> dict[str, str]:
    """Copy headers with credential values masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            if value.lower().startswith("bearer "):
                masked[key] = f"Bearer {mask_secret(value[7:])}"
            else:
                masked[key] = mask_secret(value)
        else:
            masked[key] = value
    return masked
