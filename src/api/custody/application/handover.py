"""Handover verifier: the proof-of-presence protocol for the security desk.

A holder (or a delegate acting for them) mints a short-lived proof token,
renders it as a QR code, and the security desk presents the scanned
payload back. Verification runs these checks in order and stops at the
first failure:

1. The payload parses                      -> MalformedProofError
2. It has not expired                      -> ExpiredProofError
3. Its assignment exists                   -> NotFoundError
4. Key, holder and action match            -> ProofMismatchError
   (a delegate without the right grant bit -> PermissionDeniedError)
5. The assignment is in the required state -> InvalidStateError

Verification never writes. Tokens are single-use in effect: once the
handover succeeds the assignment leaves the required state.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PayloadValidationError

from custody.application.value_objects import Clock, VerifiedHandover, system_clock
from custody.domain.aggregates import Assignment, Delegation
from custody.domain.value_objects import (
    AssignmentId,
    HandoverAction,
    KeyId,
    PrincipalId,
    ProofToken,
    from_epoch_ms,
)
from custody.ports.exceptions import (
    ExpiredProofError,
    MalformedProofError,
    NotFoundError,
    PermissionDeniedError,
    ProofMismatchError,
)
from custody.ports.repositories import (
    DelegationDirection,
    IAssignmentRepository,
    IDelegationRepository,
)

DEFAULT_PROOF_WINDOW = timedelta(minutes=10)


class ProofPayload(BaseModel):
    """Wire form of a proof token as scanned from the QR code."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    assignment_id: str = Field(alias="assignmentId", min_length=1)
    key_id: str = Field(alias="keyId", min_length=1)
    holder_id: str = Field(alias="holderId", min_length=1)
    action: HandoverAction
    issued_at: int = Field(alias="issuedAt", ge=0)
    expires_at: int = Field(alias="expiresAt", ge=0)

    @field_validator("assignment_id")
    @classmethod
    def validate_assignment_id(cls, value: str) -> str:
        """Assignment identifiers must be ULIDs."""
        return AssignmentId.from_string(value).value

    @field_validator("key_id")
    @classmethod
    def validate_key_id(cls, value: str) -> str:
        """Key identifiers must be ULIDs."""
        return KeyId.from_string(value).value

    def to_token(self) -> ProofToken:
        """Convert to the domain value object."""
        return ProofToken(
            assignment_id=self.assignment_id,
            key_id=self.key_id,
            holder_id=self.holder_id,
            action=self.action,
            issued_at=from_epoch_ms(self.issued_at),
            expires_at=from_epoch_ms(self.expires_at),
        )


def parse_proof(raw: str | bytes | Mapping[str, Any]) -> ProofToken:
    """Parse a scanned QR payload.

    Args:
        raw: The JSON text or an already-decoded mapping

    Returns:
        The ProofToken carried by the payload

    Raises:
        MalformedProofError: If the payload is not a well-formed token
    """
    try:
        if isinstance(raw, (str, bytes)):
            payload = ProofPayload.model_validate_json(raw)
        elif isinstance(raw, Mapping):
            payload = ProofPayload.model_validate(dict(raw))
        else:
            raise MalformedProofError("Proof payload must be JSON or a mapping")
    except PayloadValidationError as e:
        raise MalformedProofError(
            f"Invalid proof payload: {e.error_count()} error(s)"
        ) from e

    if payload.expires_at < payload.issued_at:
        raise MalformedProofError("Proof expires before it was issued")
    return payload.to_token()


def encode_proof(token: ProofToken) -> str:
    """Render a token as the JSON text embedded in the QR code."""
    return json.dumps(token.to_payload(), separators=(",", ":"))


class HandoverVerifier:
    """Mints and verifies handover proof tokens."""

    def __init__(
        self,
        assignment_repository: IAssignmentRepository,
        delegation_repository: IDelegationRepository,
        proof_window: timedelta = DEFAULT_PROOF_WINDOW,
        clock: Clock = system_clock,
    ) -> None:
        self._assignments = assignment_repository
        self._delegations = delegation_repository
        self._proof_window = proof_window
        self._clock = clock

    async def mint(
        self,
        assignment_id: AssignmentId,
        action: HandoverAction,
        presenter_id: PrincipalId | None = None,
    ) -> ProofToken:
        """Issue a proof for the holder or one of their active delegates.

        Args:
            assignment_id: The assignment the handover is for
            action: Collection or deposit
            presenter_id: Who will present the proof (defaults to the holder)

        Returns:
            A token valid for the configured window

        Raises:
            NotFoundError: If the assignment does not exist
            InvalidStateError: If the assignment is not ready for the action
            PermissionDeniedError: If the presenter is neither the holder nor
                a delegate allowed to perform the action
        """
        now = self._clock()
        assignment = await self._get_assignment(assignment_id)
        assignment.refresh(now)
        assignment.ensure_ready_for(action)

        presenter = presenter_id or assignment.holder_id
        if presenter != assignment.holder_id:
            delegation = await self._find_grant(assignment, presenter, action, now)
            if delegation is None or not delegation.allows(action, now):
                raise PermissionDeniedError(
                    f"{presenter.value} cannot perform {action.value} for "
                    f"assignment {assignment_id.value}"
                )

        return ProofToken.issue(
            assignment_id=assignment.id,
            key_id=assignment.key_id,
            holder_id=presenter,
            action=action,
            window=self._proof_window,
            now=now,
        )

    async def verify(
        self,
        raw: str | bytes | Mapping[str, Any],
        action: HandoverAction,
        expected_assignment_id: AssignmentId | None = None,
    ) -> VerifiedHandover:
        """Run the verification sequence against a scanned payload.

        Args:
            raw: The scanned QR payload
            action: The handover the desk is performing
            expected_assignment_id: The assignment the desk selected, if any

        Returns:
            The refreshed assignment and, for delegated handovers, the grant

        Raises:
            MalformedProofError, ExpiredProofError, NotFoundError,
            ProofMismatchError, PermissionDeniedError, InvalidStateError
        """
        token = parse_proof(raw)

        now = self._clock()
        if token.is_expired(now):
            raise ExpiredProofError(
                f"Proof for assignment {token.assignment_id} has expired"
            )

        assignment_id = AssignmentId(value=token.assignment_id)
        assignment = await self._get_assignment(assignment_id)

        if expected_assignment_id is not None and expected_assignment_id != assignment_id:
            raise ProofMismatchError("Proof was minted for another assignment")
        if KeyId(value=token.key_id) != assignment.key_id:
            raise ProofMismatchError("Proof was minted for another key")
        if token.action != action:
            raise ProofMismatchError(
                f"Proof was minted for {token.action.value}, not {action.value}"
            )

        delegation: Delegation | None = None
        presenter = PrincipalId(value=token.holder_id)
        if presenter != assignment.holder_id:
            delegation = await self._find_grant(assignment, presenter, action, now)
            if delegation is None:
                raise ProofMismatchError("Proof was minted for another holder")
            if not delegation.allows(action, now):
                raise PermissionDeniedError(
                    f"Delegation {delegation.id.value} does not permit {action.value}"
                )

        assignment.refresh(now)
        assignment.ensure_ready_for(action)
        return VerifiedHandover(assignment=assignment, delegation=delegation)

    async def _get_assignment(self, assignment_id: AssignmentId) -> Assignment:
        assignment = await self._assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id.value} not found")
        return assignment

    async def _find_grant(
        self,
        assignment: Assignment,
        delegate_id: PrincipalId,
        action: HandoverAction,
        now: datetime,
    ) -> Delegation | None:
        """Pick the presenter's grant on this assignment.

        Prefers a grant covering the action, then any live grant, then the
        most recent lapsed one so the caller can report why it was refused.
        """
        received = await self._delegations.list_for_principal(
            delegate_id, DelegationDirection.RECEIVED
        )
        grants = [d for d in received if d.assignment_id == assignment.id]
        for grant in grants:
            if grant.allows(action, now):
                return grant
        for grant in grants:
            if grant.is_active(now):
                return grant
        return grants[0] if grants else None
