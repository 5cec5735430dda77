"""
Tests for the reconciliation ledger.
"""

import gc
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from wa_gateway.models.instance import InstanceStatus
from wa_gateway.repositories.instance_store import InMemoryInstanceStore
from wa_gateway.services.instance import (
    InMemoryTenantDirectory,
    InstanceLedger,
    LedgerScopeError,
    TenantProfile,
)


@pytest.fixture
def ledger(directory):
    return InstanceLedger(InMemoryInstanceStore(), "fake", directory)


class TestLedgerScope:
    """Tests for per-tenant exclusion."""

    @pytest.mark.asyncio
    async def test_write_outside_scope_is_refused(self, ledger):
        with pytest.raises(LedgerScopeError):
            await ledger.update("42", session_name="wa-1")

    def test_scope_is_per_tenant(self, ledger):
        assert ledger.scope("1") is ledger.scope(1)
        assert ledger.scope("1") is not ledger.scope("2")

    @pytest.mark.asyncio
    async def test_idle_scopes_are_released(self, ledger):
        async with ledger.scope("42"):
            assert ledger.active_scopes == 1

        gc.collect()

        assert ledger.active_scopes == 0

    def test_observation_clock_increases(self, ledger):
        first = ledger.next_observation()

        assert ledger.next_observation() > first


class TestLedgerWrites:
    """Tests for update, clear_token and touch."""

    @pytest.mark.asyncio
    async def test_update_creates_then_merges(self, ledger):
        async with ledger.scope("42"):
            await ledger.update("42", session_name="wa-1", status=InstanceStatus.CREATED)
            record = await ledger.update("42", device_name="Pixel 8")

        assert record.session_name == "wa-1"
        assert record.device_name == "Pixel 8"
        assert record.provider == "fake"

    @pytest.mark.asyncio
    async def test_updated_at_strictly_increases_with_frozen_clock(self, ledger):
        frozen = datetime(2026, 1, 1, tzinfo=timezone.utc)
        with patch("wa_gateway.services.instance.ledger.utc_now", return_value=frozen):
            async with ledger.scope("42"):
                first = await ledger.update("42", session_name="wa-1")
                second = await ledger.touch("42")
                third = await ledger.update("42", device_name="x")

        assert first.updated_at < second.updated_at < third.updated_at

    @pytest.mark.asyncio
    async def test_none_token_never_clears(self, ledger):
        async with ledger.scope("42"):
            await ledger.update("42", session_name="wa-1", session_token="tok-1")
            record = await ledger.update("42", session_token=None, device_name="x")

        assert record.session_token == "tok-1"

    @pytest.mark.asyncio
    async def test_clear_token(self, ledger):
        async with ledger.scope("42"):
            await ledger.update("42", session_name="wa-1", session_token="tok-1")
            record = await ledger.clear_token("42")

        assert record.session_token is None

    @pytest.mark.asyncio
    async def test_touch_without_record(self, ledger):
        async with ledger.scope("7"):
            assert await ledger.touch("7") is None


class TestDirectoryIntegration:
    """Tests for seeding from and mirroring to the tenant directory."""

    @pytest.mark.asyncio
    async def test_record_seeded_from_known_session(self):
        directory = InMemoryTenantDirectory(
            [TenantProfile(id="5", username="x", session_name="wa-legacy-5", session_token="tok-legacy")]
        )
        ledger = InstanceLedger(InMemoryInstanceStore(), "fake", directory)

        async with ledger.scope("5"):
            record = await ledger.get("5")

        assert record.session_name == "wa-legacy-5"
        assert record.session_token == "tok-legacy"
        assert record.status == InstanceStatus.CREATED

    @pytest.mark.asyncio
    async def test_unknown_tenant_has_no_record(self, ledger):
        assert await ledger.get("999") is None

    @pytest.mark.asyncio
    async def test_session_fields_mirrored(self, ledger, directory):
        async with ledger.scope("42"):
            await ledger.update("42", session_name="wa-acme-store-42", session_token="tok-1")

        tenant = await directory.find_tenant("42")
        assert tenant.session_name == "wa-acme-store-42"
        assert tenant.session_token == "tok-1"

    @pytest.mark.asyncio
    async def test_token_change_is_audited_masked(self, ledger, caplog):
        with caplog.at_level("INFO", logger="wa_gateway.audit"):
            async with ledger.scope("42"):
                await ledger.update("42", session_name="wa-1", session_token="abcd1234efgh5678")

        audit = " ".join(r.getMessage() for r in caplog.records if r.name == "wa_gateway.audit")
        assert "abcd****5678" in audit
        assert "abcd1234efgh5678" not in audit
