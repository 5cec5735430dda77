"""
Dependency Injection Container

Centralized container for creating and wiring the gateway's components:
provider adapter, instance store, tenant directory, ledger, token resolver,
state machine, notifier and orchestrator.
"""

import logging

import httpx

from wa_gateway.config.settings import Settings, get_settings
from wa_gateway.integrations.providers import (
    CredentialPolicy,
    ProviderAdapter,
    create_provider_adapter,
)
from wa_gateway.repositories import InstanceStore, create_instance_store
from wa_gateway.services.instance import (
    ConnectionStateMachine,
    InMemoryTenantDirectory,
    InstanceLedger,
    InstanceOrchestrator,
    RealtimeNotifier,
    TenantDirectory,
    TokenResolver,
)

logger = logging.getLogger(__name__)


class DependencyContainer:
    """
    Dependency Injection Container.

    Single Responsibility: Create and wire all application dependencies
    Singleton Pattern: One adapter, ledger and notifier per process
    """

    def __init__(
        self,
        settings: Settings | None = None,
        adapter: ProviderAdapter | None = None,
        store: InstanceStore | None = None,
        directory: TenantDirectory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize container.

        Args:
            settings: Application settings (uses default if not provided)
            adapter: Pre-built provider adapter (tests)
            store: Pre-built instance store (tests)
            directory: Account-management collaborator
            transport: httpx transport handed to the adapter factory (tests)
        """
        self.settings = settings or get_settings()
        self._transport = transport

        self._adapter = adapter
        self._store = store
        self._directory = directory
        self._ledger: InstanceLedger | None = None
        self._notifier: RealtimeNotifier | None = None
        self._orchestrator: InstanceOrchestrator | None = None

        logger.info("DependencyContainer initialized")

    # ============================================================
    # SINGLETONS (Shared Resources)
    # ============================================================

    def get_adapter(self) -> ProviderAdapter:
        if self._adapter is None:
            self._adapter = create_provider_adapter(self.settings, transport=self._transport)
        return self._adapter

    def get_store(self) -> InstanceStore:
        if self._store is None:
            self._store = create_instance_store(self.settings)
        return self._store

    def get_directory(self) -> TenantDirectory:
        if self._directory is None:
            self._directory = InMemoryTenantDirectory(auto_register=self.settings.AUTO_REGISTER_TENANTS)
        return self._directory

    def get_ledger(self) -> InstanceLedger:
        if self._ledger is None:
            self._ledger = InstanceLedger(self.get_store(), self.get_adapter().name, self.get_directory())
        return self._ledger

    def get_notifier(self) -> RealtimeNotifier:
        if self._notifier is None:
            self._notifier = RealtimeNotifier()
        return self._notifier

    # ============================================================
    # SERVICES
    # ============================================================

    def create_credential_policy(self) -> CredentialPolicy:
        """Fallback credentials for the configured provider."""
        if self.settings.PROVIDER == "uazapi":
            return CredentialPolicy(
                admin_token=self.settings.UAZAPI_ADMIN_TOKEN,
                global_token=self.settings.UAZAPI_TOKEN,
                allow_global_fallback=not self.settings.UAZAPI_DISABLE_GLOBAL_FALLBACK,
            )
        return CredentialPolicy(admin_token=None, global_token=None, allow_global_fallback=False)

    def get_orchestrator(self) -> InstanceOrchestrator:
        """
        Get the orchestrator (singleton).

        Returns:
            InstanceOrchestrator wired to the configured adapter
        """
        if self._orchestrator is None:
            adapter = self.get_adapter()
            ledger = self.get_ledger()
            notifier = self.get_notifier()
            self._orchestrator = InstanceOrchestrator(
                adapter=adapter,
                ledger=ledger,
                directory=self.get_directory(),
                token_resolver=TokenResolver(adapter, ledger, self.create_credential_policy()),
                state_machine=ConnectionStateMachine(ledger, notifier),
                notifier=notifier,
                manual_mode=self.settings.MANUAL_INSTANCE_MODE,
                webhook_secret=self.settings.WEBHOOK_SECRET,
                message_status_path=f"{self.settings.API_V1_STR}/webhooks/message-status",
            )
            logger.info(
                f"Orchestrator ready (provider={adapter.name}, manual_mode={self.settings.MANUAL_INSTANCE_MODE})"
            )
        return self._orchestrator

    async def close(self) -> None:
        """Release adapter, notifier and store resources."""
        if self._notifier is not None:
            await self._notifier.close()
        if self._adapter is not None:
            await self._adapter.close()
        if self._store is not None:
            await self._store.close()
