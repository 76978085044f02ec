"""Assignment ledger application service for the custody bounded context.

Orchestrates the assignment state machine. Every transition runs in one
unit of work that also recomputes the key's status, cascades to the
delegations layered on the assignment, and appends the transaction log
records, so either all of it is stored or none of it is.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.handover import HandoverVerifier
from custody.application.observability import (
    AssignmentServiceProbe,
    DefaultAssignmentServiceProbe,
)
from custody.application.unit_of_work import unit_of_work
from custody.application.value_objects import Clock, VerifiedHandover, system_clock
from custody.domain.aggregates import Assignment, Key, recompute_key_status
from custody.domain.value_objects import (
    AccessType,
    AssignmentId,
    AssignmentStatus,
    HandoverAction,
    KeyId,
    PrincipalId,
    ProofToken,
)
from custody.ports.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ProofError,
)
from custody.ports.repositories import (
    IAssignmentRepository,
    IDelegationRepository,
    IKeyRepository,
)

ProofPayloadInput = str | bytes | Mapping[str, Any]


class AssignmentService:
    """Application service for the assignment ledger.

    Reads reclassify overdue holds in memory; the reclassification is
    stored (with its transaction record) by the next write on the
    assignment or by the periodic sweep.
    """

    def __init__(
        self,
        session: AsyncSession,
        key_repository: IKeyRepository,
        assignment_repository: IAssignmentRepository,
        delegation_repository: IDelegationRepository,
        verifier: HandoverVerifier,
        probe: AssignmentServiceProbe | None = None,
        clock: Clock = system_clock,
    ):
        """Initialize AssignmentService with dependencies.

        Args:
            session: Database session for transaction management
            key_repository: Repository for key persistence
            assignment_repository: Repository for assignment persistence
            delegation_repository: Repository for delegation persistence
            verifier: Handover proof verifier
            probe: Optional domain probe for observability
            clock: Source of the current time
        """
        self._session = session
        self._keys = key_repository
        self._assignments = assignment_repository
        self._delegations = delegation_repository
        self._verifier = verifier
        self._probe = probe or DefaultAssignmentServiceProbe()
        self._clock = clock

    async def request_assignment(
        self,
        key_id: KeyId,
        holder_id: PrincipalId,
        duration_hours: int,
        reason: str | None = None,
        access_type: AccessType = AccessType.TEMPORARY,
        grantor_id: PrincipalId | None = None,
    ) -> Assignment:
        """Request a key, creating a pending assignment.

        The insert is atomic against the key's other outstanding
        assignments: of two concurrent requests exactly one succeeds.

        Raises:
            ValidationError: If duration_hours is not positive
            NotFoundError: If the key does not exist
            InvalidStateError: If the key is retired or under an override
            ConflictError: If the key already has an outstanding assignment
        """
        try:
            async with unit_of_work(self._session):
                key = await self._get_key(key_id, for_update=True)
                assignment = Assignment.request(
                    key,
                    holder_id=holder_id,
                    duration_hours=duration_hours,
                    reason=reason,
                    access_type=access_type,
                    grantor_id=grantor_id,
                    now=self._clock(),
                )
                await self._assignments.save(assignment)
        except ConflictError:
            self._probe.assignment_conflict(key_id.value, holder_id.value)
            raise
        except Exception as e:
            self._probe.assignment_operation_failed("request", None, str(e))
            raise

        self._probe.assignment_requested(
            assignment.id.value,
            key_id.value,
            holder_id.value,
            assignment.due_date.isoformat(),
        )
        return assignment

    async def get_assignment(self, assignment_id: AssignmentId) -> Assignment:
        """Retrieve an assignment, reclassified against the current time.

        Raises:
            NotFoundError: If the assignment does not exist
        """
        async with unit_of_work(self._session):
            assignment = await self._get_assignment(assignment_id)
        assignment.refresh(self._clock())
        return assignment

    async def list_for_key(self, key_id: KeyId) -> list[Assignment]:
        """List a key's assignments, newest first, reclassified."""
        async with unit_of_work(self._session):
            assignments = await self._assignments.list_for_key(key_id)
        return self._refreshed(assignments)

    async def list_for_holder(
        self,
        holder_id: PrincipalId,
        statuses: set[AssignmentStatus] | None = None,
    ) -> list[Assignment]:
        """List a holder's assignments, reclassified before filtering."""
        async with unit_of_work(self._session):
            assignments = await self._assignments.list_for_holder(holder_id)
        refreshed = self._refreshed(assignments)
        if statuses is None:
            return refreshed
        return [a for a in refreshed if a.status in statuses]

    async def approve_assignment(
        self, assignment_id: AssignmentId, approver_id: PrincipalId
    ) -> Assignment:
        """Approve a pending request for an approval-gated key.

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the request is not awaiting approval
        """
        return await self._transition(
            "approve",
            assignment_id,
            lambda assignment, key: assignment.approve(approver_id, now=self._clock()),
        )

    async def reject_assignment(
        self,
        assignment_id: AssignmentId,
        approver_id: PrincipalId,
        reason: str | None = None,
    ) -> Assignment:
        """Reject a pending request.

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the request is no longer pending
        """
        return await self._transition(
            "reject",
            assignment_id,
            lambda assignment, key: assignment.reject(
                approver_id, reason=reason, now=self._clock()
            ),
        )

    async def mint_proof(
        self,
        assignment_id: AssignmentId,
        action: HandoverAction,
        presenter_id: PrincipalId | None = None,
    ) -> ProofToken:
        """Issue a handover proof for the holder or an active delegate.

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the assignment is not ready for the action
            PermissionDeniedError: If the presenter may not perform the action
        """
        try:
            async with unit_of_work(self._session):
                token = await self._verifier.mint(
                    assignment_id, action, presenter_id=presenter_id
                )
        except Exception as e:
            self._probe.assignment_operation_failed(
                "mint_proof", assignment_id.value, str(e)
            )
            raise

        self._probe.proof_minted(
            assignment_id.value,
            action.value,
            token.holder_id,
            token.expires_at.isoformat(),
        )
        return token

    async def collect(
        self,
        assignment_id: AssignmentId,
        proof: ProofPayloadInput,
        verifier_id: PrincipalId,
    ) -> Assignment:
        """Hand the key out against a collection proof.

        Raises:
            MalformedProofError, ExpiredProofError, ProofMismatchError:
                If the proof fails verification
            NotFoundError: If the assignment does not exist
            PermissionDeniedError: If a delegate lacks the collect bit
            InvalidStateError: If the assignment is not pending and approved
        """
        return await self._handover(
            "collect",
            assignment_id,
            proof,
            HandoverAction.COLLECTION,
            lambda handover, key, now: self._apply_collection(
                handover, key, verifier_id, now
            ),
        )

    async def deposit_return(
        self,
        assignment_id: AssignmentId,
        proof: ProofPayloadInput,
        verifier_id: PrincipalId,
        reason: str | None = None,
    ) -> Assignment:
        """Take the key back against a deposit proof.

        Raises:
            MalformedProofError, ExpiredProofError, ProofMismatchError:
                If the proof fails verification
            NotFoundError: If the assignment does not exist
            PermissionDeniedError: If a delegate lacks the return bit
            InvalidStateError: If the key is not currently held
        """
        return await self._handover(
            "deposit_return",
            assignment_id,
            proof,
            HandoverAction.DEPOSIT,
            lambda handover, key, now: handover.assignment.deposit_return(
                verifier_id, delegate_id=handover.delegate_id, reason=reason, now=now
            ),
        )

    async def extend_deadline(
        self, assignment_id: AssignmentId, extra_hours: int
    ) -> Assignment:
        """Push an assignment's due date back.

        Raises:
            NotFoundError: If the assignment does not exist
            ValidationError: If extra_hours is not positive
            InvalidStateError: If the key is not currently held
        """
        return await self._transition(
            "extend_deadline",
            assignment_id,
            lambda assignment, key: assignment.extend_deadline(
                extra_hours, now=self._clock()
            ),
        )

    async def force_return(
        self,
        assignment_id: AssignmentId,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Assignment:
        """Close a hold administratively without a proof.

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the key is not currently held
        """
        return await self._transition(
            "force_return",
            assignment_id,
            lambda assignment, key: assignment.force_return(
                actor_id, reason=reason, now=self._clock()
            ),
            actor_id=actor_id,
        )

    async def cancel_assignment(
        self,
        assignment_id: AssignmentId,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Assignment:
        """Cancel a pending request or revoke a hold.

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the assignment is already returned or cancelled
        """
        return await self._transition(
            "cancel",
            assignment_id,
            lambda assignment, key: assignment.cancel(
                actor_id, reason=reason, now=self._clock()
            ),
            actor_id=actor_id,
        )

    async def _transition(
        self,
        operation: str,
        assignment_id: AssignmentId,
        mutate: Callable[[Assignment, Key], None],
        actor_id: PrincipalId | None = None,
    ) -> Assignment:
        """Apply one state change and everything that depends on it."""
        try:
            async with unit_of_work(self._session):
                assignment = await self._get_assignment(assignment_id)
                key = await self._get_key(assignment.key_id, for_update=True)
                now = self._clock()
                assignment.refresh(now)
                mutate(assignment, key)
                await self._finish(assignment, key, actor_id or assignment.holder_id)
        except Exception as e:
            self._probe.assignment_operation_failed(
                operation, assignment_id.value, str(e)
            )
            raise

        self._probe.assignment_transitioned(
            assignment_id.value,
            assignment.key_id.value,
            operation,
            assignment.status.value,
        )
        return assignment

    async def _handover(
        self,
        operation: str,
        assignment_id: AssignmentId,
        proof: ProofPayloadInput,
        action: HandoverAction,
        apply: Callable[[VerifiedHandover, Key, datetime], None],
    ) -> Assignment:
        """Verify a proof, then apply the handover in the same unit of work."""
        try:
            async with unit_of_work(self._session):
                handover = await self._verifier.verify(
                    proof, action, expected_assignment_id=assignment_id
                )
                assignment = handover.assignment
                key = await self._get_key(assignment.key_id, for_update=True)
                now = self._clock()
                apply(handover, key, now)

                if handover.delegation is not None:
                    handover.delegation.record_access(now)
                    await self._delegations.save(handover.delegation)

                actor_id = handover.delegate_id or assignment.holder_id
                await self._finish(assignment, key, actor_id)
        except (ProofError, PermissionDeniedError) as e:
            self._probe.proof_rejected(action.value, type(e).__name__, str(e))
            raise
        except Exception as e:
            self._probe.assignment_operation_failed(
                operation, assignment_id.value, str(e)
            )
            raise

        if handover.delegation is not None:
            self._probe.delegated_handover(
                assignment_id.value,
                handover.delegation.id.value,
                handover.delegation.delegate_id.value,
                action.value,
            )
        self._probe.assignment_transitioned(
            assignment_id.value,
            assignment.key_id.value,
            operation,
            assignment.status.value,
        )
        return assignment

    def _apply_collection(
        self,
        handover: VerifiedHandover,
        key: Key,
        verifier_id: PrincipalId,
        now: datetime,
    ) -> None:
        handover.assignment.collect(
            verifier_id, delegate_id=handover.delegate_id, now=now
        )
        key.record_collection()

    async def _finish(
        self, assignment: Assignment, key: Key, actor_id: PrincipalId
    ) -> None:
        """Cascade, persist and recompute the key status after a transition.

        The assignment is the key's only outstanding one (or none is), so it
        alone determines the derived status.
        """
        if assignment.status in (AssignmentStatus.RETURNED, AssignmentStatus.CANCELLED):
            await self._close_delegations(assignment, actor_id)

        await self._assignments.save(assignment)
        key.current_status = recompute_key_status(key, [assignment])
        await self._keys.save(key)

    async def _close_delegations(
        self, assignment: Assignment, actor_id: PrincipalId
    ) -> None:
        now = self._clock()
        for delegation in await self._delegations.list_active_for_assignment(
            assignment.id
        ):
            if not delegation.refresh(now):
                delegation.cancel(
                    actor_id,
                    reason=f"Assignment {assignment.status.value}",
                    now=now,
                    cascade=True,
                )
            await self._delegations.save(delegation)

    async def _get_assignment(self, assignment_id: AssignmentId) -> Assignment:
        assignment = await self._assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id.value} not found")
        return assignment

    async def _get_key(self, key_id: KeyId, for_update: bool = False) -> Key:
        key = await self._keys.get_by_id(key_id, for_update=for_update)
        if key is None:
            raise NotFoundError(f"Key {key_id.value} not found")
        return key

    def _refreshed(self, assignments: list[Assignment]) -> list[Assignment]:
        now = self._clock()
        for assignment in assignments:
            assignment.refresh(now)
        return assignments
