"""
Tests for the connection state machine.
"""

import pytest

from wa_gateway.models.instance import ConnectionEvent, EventSource, InstanceStatus
from wa_gateway.repositories.instance_store import InMemoryInstanceStore
from wa_gateway.services.instance import (
    ConnectionStateMachine,
    InstanceLedger,
    RealtimeNotifier,
    TransitionOutcome,
)
from wa_gateway.services.instance.state_machine import is_allowed, status_from_report


@pytest.fixture
def ledger():
    return InstanceLedger(InMemoryInstanceStore(), "fake")


@pytest.fixture
def notifier():
    return RealtimeNotifier()


@pytest.fixture
def machine(ledger, notifier):
    return ConnectionStateMachine(ledger, notifier)


async def _link(ledger, machine, status=InstanceStatus.CREATED):
    async with ledger.scope("42"):
        await machine.transition("42", InstanceStatus.CREATED, session_name="wa-1")
        if status != InstanceStatus.CREATED:
            await machine.transition("42", status)


async def _apply(ledger, machine, **kwargs):
    event = ConnectionEvent(tenant_id="42", source=EventSource.WEBHOOK, **kwargs)
    async with ledger.scope("42"):
        return await machine.apply(event)


class TestStatusMapping:
    """Tests for vendor status mapping and the transition table."""

    def test_status_from_report(self):
        assert status_from_report("Open") == InstanceStatus.CONNECTED
        assert status_from_report("logged_out") == InstanceStatus.DISCONNECTED
        assert status_from_report("qrcode") == InstanceStatus.AWAITING_QR
        assert status_from_report("battery_low") is None
        assert status_from_report(None) is None

    def test_transition_table(self):
        assert is_allowed(InstanceStatus.UNLINKED, InstanceStatus.CREATED)
        assert not is_allowed(InstanceStatus.UNLINKED, InstanceStatus.CONNECTED)
        assert is_allowed(InstanceStatus.AWAITING_QR, InstanceStatus.CONNECTED)
        assert is_allowed(InstanceStatus.DISCONNECTED, InstanceStatus.AWAITING_QR)
        assert not is_allowed(InstanceStatus.CONNECTED, InstanceStatus.AWAITING_QR)


class TestApplyEvent:
    """Tests for ConnectionStateMachine.apply."""

    @pytest.mark.asyncio
    async def test_unlinked_tenant_is_ignored(self, ledger, machine):
        transition = await _apply(ledger, machine, reported_status="connected")

        assert transition.outcome == TransitionOutcome.NOT_LINKED
        assert await ledger.get("42") is None

    @pytest.mark.asyncio
    async def test_session_mismatch_writes_nothing(self, ledger, machine):
        await _link(ledger, machine, InstanceStatus.AWAITING_QR)
        before = await ledger.get("42")

        transition = await _apply(ledger, machine, reported_status="connected", session_hint="wa-other")

        after = await ledger.get("42")
        assert transition.outcome == TransitionOutcome.MISMATCH
        assert after.status == InstanceStatus.AWAITING_QR
        assert after.updated_at == before.updated_at

    @pytest.mark.asyncio
    async def test_connected_dispatches_once_and_replay_is_idempotent(self, ledger, machine, notifier):
        await _link(ledger, machine, InstanceStatus.AWAITING_QR)
        dispatched = notifier.dispatch_count

        first = await _apply(
            ledger, machine, reported_status="CONNECTED", session_hint="WA-1", device_name="Pixel 8"
        )
        second = await _apply(ledger, machine, reported_status="connected", session_hint="wa-1")

        assert first.outcome == TransitionOutcome.TRANSITIONED
        assert first.record.device_name == "Pixel 8"
        assert first.record.connected_at is not None
        assert second.outcome == TransitionOutcome.REFRESHED
        assert second.record.connected_at == first.record.connected_at
        assert notifier.dispatch_count == dispatched + 1

    @pytest.mark.asyncio
    async def test_stale_observation_is_dropped(self, ledger, machine):
        await _link(ledger, machine, InstanceStatus.AWAITING_QR)
        early = ledger.next_observation()
        async with ledger.scope("42"):
            await machine.transition("42", InstanceStatus.DISCONNECTED)

        transition = await _apply(ledger, machine, reported_status="connected", observation=early)

        assert transition.outcome == TransitionOutcome.STALE
        assert (await ledger.get("42")).status == InstanceStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disallowed_move_only_refreshes_metadata(self, ledger, machine):
        await _link(ledger, machine)
        await _apply(ledger, machine, reported_status="connected")

        transition = await _apply(ledger, machine, reported_status="qr", phone_number="5511999990000")

        assert transition.outcome == TransitionOutcome.REJECTED
        assert transition.record.status == InstanceStatus.CONNECTED
        assert transition.record.phone_number == "5511999990000"

    @pytest.mark.asyncio
    async def test_unknown_status_refreshes(self, ledger, machine):
        await _link(ledger, machine)
        before = await ledger.get("42")

        transition = await _apply(ledger, machine, reported_status="battery_low")

        assert transition.outcome == TransitionOutcome.REFRESHED
        assert transition.record.updated_at > before.updated_at


class TestApiTransition:
    """Tests for ConnectionStateMachine.transition."""

    @pytest.mark.asyncio
    async def test_creates_record_from_unlinked(self, ledger, machine, notifier):
        async with ledger.scope("42"):
            transition = await machine.transition(
                "42", InstanceStatus.CREATED, session_name="wa-1", session_token="tok-1"
            )

        assert transition.outcome == TransitionOutcome.TRANSITIONED
        assert transition.previous_status == InstanceStatus.UNLINKED
        assert transition.record.session_token == "tok-1"
        assert notifier.dispatch_count == 1

    @pytest.mark.asyncio
    async def test_transition_advances_observation(self, ledger, machine):
        await _link(ledger, machine)
        record = await ledger.get("42")

        assert record.last_observation > 0
