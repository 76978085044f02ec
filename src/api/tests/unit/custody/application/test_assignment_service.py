"""Unit tests for AssignmentService.

Tests the orchestration around the assignment state machine: the unit of
work, key status recomputation, delegation cascades and probe reporting.
"""

from datetime import timedelta
from unittest.mock import create_autospec

import pytest

from custody.application.handover import HandoverVerifier, encode_proof
from custody.application.observability import AssignmentServiceProbe
from custody.application.services import AssignmentService
from custody.domain.aggregates import Delegation
from custody.domain.value_objects import (
    AccessType,
    AssignmentId,
    AssignmentStatus,
    DelegationStatus,
    HandoverAction,
    KeyId,
    KeyStatus,
    ProofToken,
)
from custody.ports.exceptions import (
    ConflictError,
    ExpiredProofError,
    InvalidStateError,
    NotFoundError,
    StorageError,
)
from custody.ports.repositories import (
    IAssignmentRepository,
    IDelegationRepository,
    IKeyRepository,
)


@pytest.fixture
def mock_key_repo(key):
    repo = create_autospec(IKeyRepository, instance=True)
    repo.get_by_id.return_value = key
    return repo


@pytest.fixture
def mock_assignment_repo():
    return create_autospec(IAssignmentRepository, instance=True)


@pytest.fixture
def mock_delegation_repo():
    repo = create_autospec(IDelegationRepository, instance=True)
    repo.list_active_for_assignment.return_value = []
    repo.list_for_principal.return_value = []
    return repo


@pytest.fixture
def mock_probe():
    return create_autospec(AssignmentServiceProbe, instance=True)


@pytest.fixture
def assignment_service(
    mock_session,
    mock_key_repo,
    mock_assignment_repo,
    mock_delegation_repo,
    mock_probe,
    clock,
):
    verifier = HandoverVerifier(
        assignment_repository=mock_assignment_repo,
        delegation_repository=mock_delegation_repo,
        clock=clock,
    )
    return AssignmentService(
        session=mock_session,
        key_repository=mock_key_repo,
        assignment_repository=mock_assignment_repo,
        delegation_repository=mock_delegation_repo,
        verifier=verifier,
        probe=mock_probe,
        clock=clock,
    )


def _proof(assignment, action, now, presenter=None) -> str:
    return encode_proof(
        ProofToken.issue(
            assignment_id=assignment.id,
            key_id=assignment.key_id,
            holder_id=presenter or assignment.holder_id,
            action=action,
            window=timedelta(minutes=10),
            now=now,
        )
    )


class TestRequestAssignment:
    """Tests for AssignmentService.request_assignment."""

    @pytest.mark.asyncio
    async def test_creates_pending_assignment(
        self,
        assignment_service,
        mock_session,
        mock_key_repo,
        mock_assignment_repo,
        mock_probe,
        key,
        holder_id,
        now,
    ):
        """Should save a pending assignment inside a transaction."""
        assignment = await assignment_service.request_assignment(
            key.id, holder_id, 24, reason="Lab session", access_type=AccessType.SHARED
        )

        assert assignment.status == AssignmentStatus.PENDING
        assert assignment.due_date == now + timedelta(hours=24)
        assert assignment.access_type == AccessType.SHARED
        mock_session.begin.assert_called_once()
        mock_key_repo.get_by_id.assert_called_once_with(key.id, for_update=True)
        mock_assignment_repo.save.assert_called_once_with(assignment)
        mock_probe.assignment_requested.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_key(self, assignment_service, mock_key_repo, holder_id):
        mock_key_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await assignment_service.request_assignment(KeyId.generate(), holder_id, 4)

    @pytest.mark.asyncio
    async def test_conflict_reported_to_probe(
        self, assignment_service, mock_assignment_repo, mock_probe, key, holder_id
    ):
        """A second outstanding request for the key loses the race."""
        mock_assignment_repo.save.side_effect = ConflictError("outstanding")

        with pytest.raises(ConflictError):
            await assignment_service.request_assignment(key.id, holder_id, 4)

        mock_probe.assignment_conflict.assert_called_once_with(
            key.id.value, holder_id.value
        )
        mock_probe.assignment_requested.assert_not_called()

    @pytest.mark.asyncio
    async def test_retired_key_rejected(
        self, assignment_service, mock_assignment_repo, mock_probe, key, holder_id
    ):
        key.is_active = False

        with pytest.raises(InvalidStateError):
            await assignment_service.request_assignment(key.id, holder_id, 4)

        mock_assignment_repo.save.assert_not_called()
        mock_probe.assignment_operation_failed.assert_called_once()


class TestReads:
    """Tests for the read operations."""

    @pytest.mark.asyncio
    async def test_get_reclassifies_in_memory(
        self, assignment_service, mock_assignment_repo, make_assignment
    ):
        """A past-due hold reads as overdue without being written."""
        assignment = make_assignment(
            AssignmentStatus.ACTIVE, duration_hours=2, collected_hours_ago=3
        )
        mock_assignment_repo.get_by_id.return_value = assignment

        result = await assignment_service.get_assignment(assignment.id)

        assert result.status == AssignmentStatus.OVERDUE
        mock_assignment_repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_missing(self, assignment_service, mock_assignment_repo):
        mock_assignment_repo.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await assignment_service.get_assignment(AssignmentId.generate())

    @pytest.mark.asyncio
    async def test_list_for_holder_filters_after_refresh(
        self, assignment_service, mock_assignment_repo, make_assignment, holder_id
    ):
        late = make_assignment(AssignmentStatus.ACTIVE, duration_hours=2, collected_hours_ago=3)
        current = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.list_for_holder.return_value = [late, current]

        result = await assignment_service.list_for_holder(
            holder_id, statuses={AssignmentStatus.OVERDUE}
        )

        assert result == [late]


class TestHandovers:
    """Tests for collect and deposit_return."""

    @pytest.mark.asyncio
    async def test_collect_marks_key_assigned(
        self,
        assignment_service,
        mock_assignment_repo,
        mock_key_repo,
        mock_probe,
        make_assignment,
        key,
        desk_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment

        result = await assignment_service.collect(
            assignment.id, _proof(assignment, HandoverAction.COLLECTION, now), desk_id
        )

        assert result.status == AssignmentStatus.ACTIVE
        assert result.collected_by == desk_id
        assert key.current_status == KeyStatus.ASSIGNED
        assert key.total_assignments == 1
        mock_assignment_repo.save.assert_called_once_with(assignment)
        mock_key_repo.save.assert_called_once_with(key)
        mock_probe.assignment_transitioned.assert_called_once_with(
            assignment.id.value, key.id.value, "collect", "active"
        )

    @pytest.mark.asyncio
    async def test_expired_proof_rejected_without_writes(
        self,
        assignment_service,
        mock_assignment_repo,
        mock_key_repo,
        mock_probe,
        make_assignment,
        desk_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment
        stale = _proof(assignment, HandoverAction.COLLECTION, now - timedelta(hours=1))

        with pytest.raises(ExpiredProofError):
            await assignment_service.collect(assignment.id, stale, desk_id)

        mock_assignment_repo.save.assert_not_called()
        mock_key_repo.save.assert_not_called()
        mock_probe.proof_rejected.assert_called_once()

    @pytest.mark.asyncio
    async def test_delegated_deposit(
        self,
        assignment_service,
        mock_assignment_repo,
        mock_delegation_repo,
        mock_key_repo,
        mock_probe,
        make_assignment,
        key,
        holder_id,
        peer_id,
        desk_id,
        now,
    ):
        """A delegate with the return bit deposits; grants are then closed."""
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        key.current_status = KeyStatus.ASSIGNED
        grant = Delegation.create(
            assignment,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=4,
            now=now,
        )
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_for_principal.return_value = [grant]
        mock_delegation_repo.list_active_for_assignment.return_value = [grant]

        result = await assignment_service.deposit_return(
            assignment.id,
            _proof(assignment, HandoverAction.DEPOSIT, now, presenter=peer_id),
            desk_id,
        )

        assert result.status == AssignmentStatus.RETURNED
        assert key.current_status == KeyStatus.AVAILABLE
        assert grant.access_count == 1
        assert grant.status == DelegationStatus.CANCELLED
        mock_probe.delegated_handover.assert_called_once_with(
            assignment.id.value, grant.id.value, peer_id.value, "deposit"
        )

    @pytest.mark.asyncio
    async def test_mint_proof_reports_probe(
        self, assignment_service, mock_assignment_repo, mock_probe, make_assignment, now
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment

        token = await assignment_service.mint_proof(
            assignment.id, HandoverAction.COLLECTION
        )

        assert token.expires_at == now + timedelta(minutes=10)
        mock_probe.proof_minted.assert_called_once()


class TestTransitions:
    """Tests for the transitions without a proof."""

    @pytest.mark.asyncio
    async def test_extend_overdue_hold_reverts_key_state(
        self, assignment_service, mock_assignment_repo, make_assignment, key
    ):
        assignment = make_assignment(
            AssignmentStatus.OVERDUE, duration_hours=1, collected_hours_ago=2
        )
        mock_assignment_repo.get_by_id.return_value = assignment

        result = await assignment_service.extend_deadline(assignment.id, 48)

        assert result.status == AssignmentStatus.ACTIVE
        assert key.current_status == KeyStatus.ASSIGNED
        mock_assignment_repo.save.assert_called_once_with(assignment)

    @pytest.mark.asyncio
    async def test_cancel_cascades_to_delegations(
        self,
        assignment_service,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        grant = Delegation.create(
            assignment,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=4,
            now=now,
        )
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_active_for_assignment.return_value = [grant]

        await assignment_service.cancel_assignment(assignment.id, holder_id)

        assert grant.status == DelegationStatus.CANCELLED
        assert grant.cancelled_by == holder_id
        mock_delegation_repo.save.assert_called_once_with(grant)

    @pytest.mark.asyncio
    async def test_lapsed_grant_expires_instead_of_cancelling(
        self,
        assignment_service,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        grant = Delegation.create(
            assignment,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=1,
            now=now - timedelta(hours=2),
        )
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_active_for_assignment.return_value = [grant]

        await assignment_service.force_return(assignment.id, holder_id)

        assert grant.status == DelegationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_second_cancel_fails(
        self, assignment_service, mock_assignment_repo, mock_probe, make_assignment, holder_id
    ):
        assignment = make_assignment(AssignmentStatus.CANCELLED)
        mock_assignment_repo.get_by_id.return_value = assignment

        with pytest.raises(InvalidStateError):
            await assignment_service.cancel_assignment(assignment.id, holder_id)

        mock_assignment_repo.save.assert_not_called()
        mock_probe.assignment_operation_failed.assert_called_once()

    @pytest.mark.asyncio
    async def test_stale_write_surfaces_invalid_state(
        self, assignment_service, mock_assignment_repo, make_assignment, holder_id
    ):
        """A lost compare-and-swap race is reported, not retried."""
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_assignment_repo.save.side_effect = InvalidStateError("stale")

        with pytest.raises(InvalidStateError):
            await assignment_service.force_return(assignment.id, holder_id)

    @pytest.mark.asyncio
    async def test_storage_errors_wrapped(
        self, assignment_service, mock_assignment_repo, make_assignment, holder_id
    ):
        from sqlalchemy.exc import OperationalError

        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_assignment_repo.save.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(StorageError):
            await assignment_service.cancel_assignment(assignment.id, holder_id)
