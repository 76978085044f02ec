"""Integration tests for custody flows against PostgreSQL.

Run with: pytest -m integration src/api/tests/integration/custody
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from custody.application.handover import encode_proof
from custody.domain.value_objects import (
    Availability,
    AssignmentStatus,
    DelegationPermissions,
    DelegationStatus,
    HandoverAction,
    PrincipalId,
    ProofToken,
    TransactionType,
)
from custody.ports.exceptions import (
    ConflictError,
    ExpiredProofError,
    PermissionDeniedError,
)
from custody.ports.repositories import DelegationDirection

pytestmark = pytest.mark.integration

ALICE = PrincipalId(value="alice")
BOB = PrincipalId(value="bob")
CAROL = PrincipalId(value="carol")
DESK = PrincipalId(value="security-desk")


async def _register(services):
    return await services.keys.register_key(
        name="Chem Lab 101",
        lab_name="Organic Chemistry",
        lab_number="101",
        department="Chemistry",
        location="Desk A",
    )


async def _collected(services, holder=ALICE, duration_hours=24):
    key = await _register(services)
    assignment = await services.assignments.request_assignment(
        key.id, holder, duration_hours
    )
    token = await services.assignments.mint_proof(
        assignment.id, HandoverAction.COLLECTION
    )
    assignment = await services.assignments.collect(
        assignment.id, encode_proof(token), DESK
    )
    return key, assignment


class TestConcurrentRequests:
    """Exactly one of two simultaneous requests wins the key."""

    @pytest.mark.asyncio
    async def test_one_pending_one_conflict(self, build_services):
        setup = build_services()
        key = await _register(setup)
        first, second = build_services(), build_services()

        results = await asyncio.gather(
            first.assignments.request_assignment(key.id, ALICE, 8),
            second.assignments.request_assignment(key.id, BOB, 8),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert winners[0].status == AssignmentStatus.PENDING
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)

        outstanding = await setup.assignments.list_for_key(key.id)
        assert len(outstanding) == 1

    @pytest.mark.asyncio
    async def test_grant_racing_cancellation_never_outlives_hold(self, build_services):
        setup = build_services()
        _, assignment = await _collected(setup)
        sharer, canceller = build_services(), build_services()

        results = await asyncio.gather(
            sharer.delegations.delegate(assignment.key_id, ALICE, BOB, 4),
            canceller.assignments.cancel_assignment(assignment.id, ALICE),
            return_exceptions=True,
        )

        granted, cancelled = results
        assert cancelled.status == AssignmentStatus.CANCELLED
        if isinstance(granted, Exception):
            assert isinstance(granted, ConflictError)

        reader = build_services()
        given = await reader.delegations.list_delegations(
            ALICE, DelegationDirection.GIVEN
        )
        assert all(d.status != DelegationStatus.ACTIVE for d in given)


class TestOverdueLifecycle:
    """A 24 hour hold goes overdue and comes back after an extension."""

    @pytest.mark.asyncio
    async def test_overdue_then_extended(self, services, clock):
        key, assignment = await _collected(services, duration_hours=24)
        assert assignment.status == AssignmentStatus.ACTIVE
        assert await services.keys.availability(key.id) == Availability.HELD

        clock.advance(hours=25)

        read = await services.assignments.get_assignment(assignment.id)
        assert read.status == AssignmentStatus.OVERDUE
        overdue = await services.overdue.list_overdue()
        assert [a.id for a in overdue] == [assignment.id]

        report = await services.overdue.sweep()
        assert report.assignments_overdue == 1
        again = await services.overdue.sweep()
        assert again.assignments_overdue == 0

        extended = await services.assignments.extend_deadline(assignment.id, 48)

        assert extended.status == AssignmentStatus.ACTIVE
        assert await services.overdue.list_overdue() == []
        history = await services.history.history_for_key(key.id)
        types = {record.type for record in history}
        assert {
            TransactionType.REQUESTED,
            TransactionType.COLLECTED,
            TransactionType.OVERDUE,
            TransactionType.EXTENDED,
        } <= types

    @pytest.mark.asyncio
    async def test_reminder_recorded(self, services, clock):
        _, assignment = await _collected(services, duration_hours=24)
        clock.advance(days=3)

        results = await services.overdue.send_reminders()

        assert len(results) == 1
        assert results[0].delivered is True
        assert results[0].days_overdue == 2
        refreshed = await services.assignments.get_assignment(assignment.id)
        assert refreshed.reminders_sent == 1


class TestProofs:
    """Handover proofs are checked against the clock and the assignment."""

    @pytest.mark.asyncio
    async def test_expired_proof_changes_nothing(self, services, clock):
        key = await _register(services)
        assignment = await services.assignments.request_assignment(key.id, ALICE, 8)
        token = await services.assignments.mint_proof(
            assignment.id, HandoverAction.COLLECTION
        )

        clock.advance(minutes=11)

        with pytest.raises(ExpiredProofError):
            await services.assignments.collect(assignment.id, encode_proof(token), DESK)

        unchanged = await services.assignments.get_assignment(assignment.id)
        assert unchanged.status == AssignmentStatus.PENDING
        assert await services.keys.availability(key.id) == Availability.AVAILABLE


class TestDelegatedReturn:
    """A delegate returns the key on the holder's behalf."""

    @pytest.mark.asyncio
    async def test_delegate_deposits_key(self, services):
        key, assignment = await _collected(services)
        grant = await services.delegations.delegate(
            key.id,
            ALICE,
            BOB,
            4,
            permissions=DelegationPermissions(can_collect=False, can_return=True),
        )
        other = await services.delegations.delegate(key.id, ALICE, CAROL, 4)

        token = await services.assignments.mint_proof(
            assignment.id, HandoverAction.DEPOSIT, presenter_id=BOB
        )
        returned = await services.assignments.deposit_return(
            assignment.id, encode_proof(token), DESK
        )

        assert returned.status == AssignmentStatus.RETURNED
        assert returned.returned_by == DESK
        assert await services.keys.availability(key.id) == Availability.AVAILABLE

        used = await services.delegations.get_delegation(grant.id)
        assert used.access_count == 1
        assert used.status == DelegationStatus.CANCELLED
        untouched = await services.delegations.get_delegation(other.id)
        assert untouched.status == DelegationStatus.CANCELLED

        history = await services.history.history_for_key(key.id)
        returned_records = [r for r in history if r.type == TransactionType.RETURNED]
        assert len(returned_records) == 1
        assert returned_records[0].delegate_id == BOB
        assert returned_records[0].verifier_id == DESK

    @pytest.mark.asyncio
    async def test_lapsed_delegate_cannot_deposit(self, services, clock):
        key, assignment = await _collected(services, duration_hours=24)
        await services.delegations.delegate(key.id, ALICE, BOB, 2)

        clock.advance(hours=3)

        with pytest.raises(PermissionDeniedError):
            await services.assignments.mint_proof(
                assignment.id, HandoverAction.DEPOSIT, presenter_id=BOB
            )
        token = ProofToken.issue(
            assignment_id=assignment.id,
            key_id=key.id,
            holder_id=BOB,
            action=HandoverAction.DEPOSIT,
            window=timedelta(minutes=10),
            now=clock(),
        )
        with pytest.raises(PermissionDeniedError):
            await services.assignments.deposit_return(
                assignment.id, encode_proof(token), DESK
            )

        unchanged = await services.assignments.get_assignment(assignment.id)
        assert unchanged.status == AssignmentStatus.ACTIVE
        assert unchanged.returned_at is None
        assert await services.keys.availability(key.id) == Availability.HELD
