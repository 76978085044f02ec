"""Command dispatch for custody operations.

Each operation is a typed command routed through a dispatch table to the
application service method that handles it. Callers (the HTTP layer, the
sweep worker, scripts) name an operation instead of reaching into the
services directly.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

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
    DelegationId,
    DelegationPermissions,
    HandoverAction,
    KeyId,
    KeyStatus,
    PrincipalId,
)
from custody.ports.exceptions import ValidationError


class CustodyOperation(StrEnum):
    """Names of the operations the dispatch table accepts."""

    REGISTER_KEY = "register_key"
    SET_KEY_STATUS = "set_key_status"
    RETIRE_KEY = "retire_key"
    REQUEST_ASSIGNMENT = "request_assignment"
    APPROVE_ASSIGNMENT = "approve_assignment"
    REJECT_ASSIGNMENT = "reject_assignment"
    MINT_PROOF = "mint_proof"
    COLLECT = "collect"
    DEPOSIT_RETURN = "deposit_return"
    EXTEND_DEADLINE = "extend_deadline"
    FORCE_RETURN = "force_return"
    CANCEL_ASSIGNMENT = "cancel_assignment"
    DELEGATE = "delegate"
    REVOKE_DELEGATION = "revoke_delegation"
    CANCEL_DELEGATION = "cancel_delegation"
    EXTEND_DELEGATION = "extend_delegation"
    LIST_OVERDUE = "list_overdue"
    SEND_REMINDERS = "send_reminders"
    SWEEP = "sweep"


@dataclass(frozen=True)
class RegisterKey:
    operation: ClassVar[CustodyOperation] = CustodyOperation.REGISTER_KEY

    name: str
    lab_name: str
    lab_number: str
    department: str
    location: str
    description: str | None = None
    requires_approval: bool = False
    max_assignment_duration_hours: int = 24


@dataclass(frozen=True)
class SetKeyStatus:
    operation: ClassVar[CustodyOperation] = CustodyOperation.SET_KEY_STATUS

    key_id: KeyId
    status: KeyStatus
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class RetireKey:
    operation: ClassVar[CustodyOperation] = CustodyOperation.RETIRE_KEY

    key_id: KeyId
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class RequestAssignment:
    operation: ClassVar[CustodyOperation] = CustodyOperation.REQUEST_ASSIGNMENT

    key_id: KeyId
    holder_id: PrincipalId
    duration_hours: int
    reason: str | None = None
    access_type: AccessType = AccessType.TEMPORARY
    grantor_id: PrincipalId | None = None


@dataclass(frozen=True)
class ApproveAssignment:
    operation: ClassVar[CustodyOperation] = CustodyOperation.APPROVE_ASSIGNMENT

    assignment_id: AssignmentId
    approver_id: PrincipalId


@dataclass(frozen=True)
class RejectAssignment:
    operation: ClassVar[CustodyOperation] = CustodyOperation.REJECT_ASSIGNMENT

    assignment_id: AssignmentId
    approver_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class MintProof:
    operation: ClassVar[CustodyOperation] = CustodyOperation.MINT_PROOF

    assignment_id: AssignmentId
    action: HandoverAction
    presenter_id: PrincipalId | None = None


@dataclass(frozen=True)
class Collect:
    operation: ClassVar[CustodyOperation] = CustodyOperation.COLLECT

    assignment_id: AssignmentId
    proof: str | Mapping[str, Any]
    verifier_id: PrincipalId


@dataclass(frozen=True)
class DepositReturn:
    operation: ClassVar[CustodyOperation] = CustodyOperation.DEPOSIT_RETURN

    assignment_id: AssignmentId
    proof: str | Mapping[str, Any]
    verifier_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class ExtendDeadline:
    operation: ClassVar[CustodyOperation] = CustodyOperation.EXTEND_DEADLINE

    assignment_id: AssignmentId
    extra_hours: int


@dataclass(frozen=True)
class ForceReturn:
    operation: ClassVar[CustodyOperation] = CustodyOperation.FORCE_RETURN

    assignment_id: AssignmentId
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class CancelAssignment:
    operation: ClassVar[CustodyOperation] = CustodyOperation.CANCEL_ASSIGNMENT

    assignment_id: AssignmentId
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class Delegate:
    operation: ClassVar[CustodyOperation] = CustodyOperation.DELEGATE

    key_id: KeyId
    delegator_id: PrincipalId
    delegate_id: PrincipalId
    duration_hours: int
    message: str | None = None
    permissions: DelegationPermissions = field(default_factory=DelegationPermissions)


@dataclass(frozen=True)
class RevokeDelegation:
    operation: ClassVar[CustodyOperation] = CustodyOperation.REVOKE_DELEGATION

    delegation_id: DelegationId
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class CancelDelegation:
    operation: ClassVar[CustodyOperation] = CustodyOperation.CANCEL_DELEGATION

    delegation_id: DelegationId
    actor_id: PrincipalId
    reason: str | None = None


@dataclass(frozen=True)
class ExtendDelegation:
    operation: ClassVar[CustodyOperation] = CustodyOperation.EXTEND_DELEGATION

    delegation_id: DelegationId
    extra_hours: int
    actor_id: PrincipalId


@dataclass(frozen=True)
class ListOverdue:
    operation: ClassVar[CustodyOperation] = CustodyOperation.LIST_OVERDUE


@dataclass(frozen=True)
class SendReminders:
    operation: ClassVar[CustodyOperation] = CustodyOperation.SEND_REMINDERS

    scope: ReminderScope = field(default_factory=ReminderScope.everyone)


@dataclass(frozen=True)
class Sweep:
    operation: ClassVar[CustodyOperation] = CustodyOperation.SWEEP


CustodyCommand = (
    RegisterKey
    | SetKeyStatus
    | RetireKey
    | RequestAssignment
    | ApproveAssignment
    | RejectAssignment
    | MintProof
    | Collect
    | DepositReturn
    | ExtendDeadline
    | ForceReturn
    | CancelAssignment
    | Delegate
    | RevokeDelegation
    | CancelDelegation
    | ExtendDelegation
    | ListOverdue
    | SendReminders
    | Sweep
)

Handler = Callable[[Any], Awaitable[Any]]


class CustodyCommandBus:
    """Routes custody commands to their handlers through a dispatch table."""

    def __init__(
        self,
        key_registry: KeyRegistryService,
        assignments: AssignmentService,
        delegations: DelegationService,
        overdue: OverdueService,
    ) -> None:
        self._handlers: dict[CustodyOperation, Handler] = {
            CustodyOperation.REGISTER_KEY: lambda c: key_registry.register_key(
                name=c.name,
                lab_name=c.lab_name,
                lab_number=c.lab_number,
                department=c.department,
                location=c.location,
                description=c.description,
                requires_approval=c.requires_approval,
                max_assignment_duration_hours=c.max_assignment_duration_hours,
            ),
            CustodyOperation.SET_KEY_STATUS: lambda c: key_registry.set_key_status(
                c.key_id, c.status, c.actor_id, reason=c.reason
            ),
            CustodyOperation.RETIRE_KEY: lambda c: key_registry.retire_key(
                c.key_id, c.actor_id, reason=c.reason
            ),
            CustodyOperation.REQUEST_ASSIGNMENT: lambda c: assignments.request_assignment(
                c.key_id,
                c.holder_id,
                c.duration_hours,
                reason=c.reason,
                access_type=c.access_type,
                grantor_id=c.grantor_id,
            ),
            CustodyOperation.APPROVE_ASSIGNMENT: lambda c: assignments.approve_assignment(
                c.assignment_id, c.approver_id
            ),
            CustodyOperation.REJECT_ASSIGNMENT: lambda c: assignments.reject_assignment(
                c.assignment_id, c.approver_id, reason=c.reason
            ),
            CustodyOperation.MINT_PROOF: lambda c: assignments.mint_proof(
                c.assignment_id, c.action, presenter_id=c.presenter_id
            ),
            CustodyOperation.COLLECT: lambda c: assignments.collect(
                c.assignment_id, c.proof, c.verifier_id
            ),
            CustodyOperation.DEPOSIT_RETURN: lambda c: assignments.deposit_return(
                c.assignment_id, c.proof, c.verifier_id, reason=c.reason
            ),
            CustodyOperation.EXTEND_DEADLINE: lambda c: assignments.extend_deadline(
                c.assignment_id, c.extra_hours
            ),
            CustodyOperation.FORCE_RETURN: lambda c: assignments.force_return(
                c.assignment_id, c.actor_id, reason=c.reason
            ),
            CustodyOperation.CANCEL_ASSIGNMENT: lambda c: assignments.cancel_assignment(
                c.assignment_id, c.actor_id, reason=c.reason
            ),
            CustodyOperation.DELEGATE: lambda c: delegations.delegate(
                c.key_id,
                c.delegator_id,
                c.delegate_id,
                c.duration_hours,
                message=c.message,
                permissions=c.permissions,
            ),
            CustodyOperation.REVOKE_DELEGATION: lambda c: delegations.revoke_delegation(
                c.delegation_id, c.actor_id, reason=c.reason
            ),
            CustodyOperation.CANCEL_DELEGATION: lambda c: delegations.cancel_delegation(
                c.delegation_id, c.actor_id, reason=c.reason
            ),
            CustodyOperation.EXTEND_DELEGATION: lambda c: delegations.extend_delegation(
                c.delegation_id, c.extra_hours, c.actor_id
            ),
            CustodyOperation.LIST_OVERDUE: lambda c: overdue.list_overdue(),
            CustodyOperation.SEND_REMINDERS: lambda c: overdue.send_reminders(c.scope),
            CustodyOperation.SWEEP: lambda c: overdue.sweep(),
        }

    def operations(self) -> frozenset[CustodyOperation]:
        """Return every operation the bus can dispatch."""
        return frozenset(self._handlers)

    async def dispatch(self, command: CustodyCommand) -> Any:
        """Run a command through its handler.

        Args:
            command: One of the command dataclasses in this module

        Returns:
            Whatever the handling service method returns

        Raises:
            ValidationError: If no handler is registered for the command
            CustodyError: Whatever the handling service raises
        """
        operation = getattr(command, "operation", None)
        handler = self._handlers.get(operation) if operation else None
        if handler is None:
            raise ValidationError(
                f"No handler registered for command: {type(command).__name__}. "
                f"Registered operations: {sorted(self._handlers)}"
            )
        return await handler(command)
