"""Unit tests for CustodyCommandBus dispatch."""

from unittest.mock import AsyncMock

import pytest

from custody.application.commands import (
    Collect,
    CustodyCommandBus,
    CustodyOperation,
    Delegate,
    ListOverdue,
    RegisterKey,
    RequestAssignment,
    SendReminders,
    Sweep,
)
from custody.application.services import (
    AssignmentService,
    DelegationService,
    KeyRegistryService,
    OverdueService,
)
from custody.application.value_objects import ReminderScope
from custody.domain.value_objects import (
    AccessType,
    AssignmentId,
    DelegationPermissions,
    KeyId,
    PrincipalId,
)
from custody.ports.exceptions import ValidationError


@pytest.fixture
def services():
    return {
        "key_registry": AsyncMock(spec=KeyRegistryService),
        "assignments": AsyncMock(spec=AssignmentService),
        "delegations": AsyncMock(spec=DelegationService),
        "overdue": AsyncMock(spec=OverdueService),
    }


@pytest.fixture
def bus(services):
    return CustodyCommandBus(**services)


class TestCommandBus:
    """Tests for routing commands to services."""

    def test_every_operation_has_a_handler(self, bus):
        assert bus.operations() == frozenset(CustodyOperation)

    @pytest.mark.asyncio
    async def test_register_key(self, bus, services):
        await bus.dispatch(
            RegisterKey(
                name="Chem Lab 101",
                lab_name="Organic",
                lab_number="101",
                department="Chemistry",
                location="Desk A",
            )
        )

        services["key_registry"].register_key.assert_awaited_once_with(
            name="Chem Lab 101",
            lab_name="Organic",
            lab_number="101",
            department="Chemistry",
            location="Desk A",
            description=None,
            requires_approval=False,
            max_assignment_duration_hours=24,
        )

    @pytest.mark.asyncio
    async def test_request_assignment_returns_service_result(self, bus, services):
        key_id = KeyId.generate()
        holder = PrincipalId(value="alice")
        services["assignments"].request_assignment.return_value = "assignment"

        result = await bus.dispatch(
            RequestAssignment(key_id=key_id, holder_id=holder, duration_hours=24)
        )

        assert result == "assignment"
        services["assignments"].request_assignment.assert_awaited_once_with(
            key_id,
            holder,
            24,
            reason=None,
            access_type=AccessType.TEMPORARY,
            grantor_id=None,
        )

    @pytest.mark.asyncio
    async def test_collect_passes_proof(self, bus, services):
        assignment_id = AssignmentId.generate()
        desk = PrincipalId(value="desk")

        await bus.dispatch(Collect(assignment_id=assignment_id, proof="{}", verifier_id=desk))

        services["assignments"].collect.assert_awaited_once_with(assignment_id, "{}", desk)

    @pytest.mark.asyncio
    async def test_delegate_default_permissions(self, bus, services):
        key_id = KeyId.generate()
        alice, bob = PrincipalId(value="alice"), PrincipalId(value="bob")

        await bus.dispatch(
            Delegate(key_id=key_id, delegator_id=alice, delegate_id=bob, duration_hours=4)
        )

        services["delegations"].delegate.assert_awaited_once_with(
            key_id, alice, bob, 4, message=None, permissions=DelegationPermissions()
        )

    @pytest.mark.asyncio
    async def test_overdue_operations(self, bus, services):
        await bus.dispatch(ListOverdue())
        await bus.dispatch(SendReminders())
        await bus.dispatch(Sweep())

        services["overdue"].list_overdue.assert_awaited_once_with()
        services["overdue"].send_reminders.assert_awaited_once_with(ReminderScope())
        services["overdue"].sweep.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_unknown_command_rejected(self, bus):
        with pytest.raises(ValidationError, match="No handler registered"):
            await bus.dispatch(object())
