# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Excepciones de la orquestación de instancias.
# ============================================================================
"""
Instance Orchestration Exceptions.

Single Responsibility: Define errors raised by the orchestrator itself
(as opposed to vendor errors raised by adapters).
"""

from wa_gateway.integrations.providers.exceptions import GatewayError


class TenantNotFoundError(GatewayError):
    """The tenant directory does not know the tenant."""

    kind = "tenant_not_found"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant '{tenant_id}' not found", tenant_id=tenant_id)
        self.tenant_id = tenant_id


class SessionNotLinkedError(GatewayError):
    """The tenant has no vendor session linked yet."""

    kind = "session_not_linked"

    def __init__(self, tenant_id: str, hint: str | None = None) -> None:
        message = f"Tenant '{tenant_id}' has no linked session"
        if hint:
            message = f"{message}; {hint}"
        super().__init__(message, tenant_id=tenant_id)
        self.tenant_id = tenant_id
