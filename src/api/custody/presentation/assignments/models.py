"""Pydantic models for assignment ledger requests and responses."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from custody.application.handover import encode_proof
from custody.domain.aggregates import Assignment
from custody.domain.value_objects import AccessType, HandoverAction, ProofToken


class AccessTypeEnum(StrEnum):
    """API-level enum for assignment access types."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"
    SHARED = "shared"


class HandoverActionEnum(StrEnum):
    """API-level enum for security desk handovers."""

    COLLECTION = "collection"
    DEPOSIT = "deposit"


class RequestAssignmentRequest(BaseModel):
    """Request model for requesting a key.

    The requester (X-Actor-Id) becomes the holder.
    """

    key_id: str = Field(..., description="Key to request (ULID format)", min_length=1)
    duration_hours: int | None = Field(
        None,
        description="Requested hold length; defaults to the configured duration",
        ge=1,
    )
    reason: str | None = Field(None, description="Why the key is needed")
    access_type: AccessTypeEnum = Field(
        AccessTypeEnum.TEMPORARY, description="Kind of access requested"
    )

    def to_domain_access_type(self) -> AccessType:
        """Convert API access type to domain AccessType."""
        return AccessType(self.access_type.value)


class RejectAssignmentRequest(BaseModel):
    """Request model for rejecting a pending request."""

    reason: str | None = Field(None, description="Why the request is rejected")


class MintProofRequest(BaseModel):
    """Request model for minting a handover proof."""

    action: HandoverActionEnum = Field(..., description="collection or deposit")
    presenter_id: str | None = Field(
        None,
        description="Who will present the proof; defaults to the caller",
        min_length=1,
    )

    def to_domain_action(self) -> HandoverAction:
        """Convert API action to domain HandoverAction."""
        return HandoverAction(self.action.value)


class HandoverRequest(BaseModel):
    """Request model for a handover at the security desk.

    The caller (X-Actor-Id) is recorded as the verifier.
    """

    proof: str | dict[str, Any] = Field(
        ..., description="Scanned QR payload, as JSON text or an object"
    )
    reason: str | None = Field(None, description="Return note (deposits only)")


class ExtendRequest(BaseModel):
    """Request model for pushing a deadline back."""

    extra_hours: int = Field(..., description="Hours to add", ge=1)


class CloseAssignmentRequest(BaseModel):
    """Request model for force returns and cancellations."""

    reason: str | None = Field(None, description="Why the assignment is closed")


class AssignmentResponse(BaseModel):
    """Response model for an assignment."""

    id: str = Field(..., description="Assignment ID (ULID format)")
    key_id: str = Field(..., description="Assigned key")
    holder_id: str = Field(..., description="Principal holding the key")
    grantor_id: str = Field(..., description="Principal who granted the assignment")
    status: str = Field(..., description="pending, active, overdue, returned or cancelled")
    access_type: str = Field(..., description="permanent, temporary or shared")
    assigned_date: datetime = Field(..., description="When the request was made")
    due_date: datetime = Field(..., description="When the key must be back")
    approval_required: bool = Field(..., description="Whether approval gates collection")
    approved_at: datetime | None = Field(None, description="When it was approved")
    approved_by: str | None = Field(None, description="Who approved it")
    collected_at: datetime | None = Field(None, description="When the key was collected")
    collected_by: str | None = Field(None, description="Who collected the key")
    returned_at: datetime | None = Field(None, description="When the key came back")
    returned_by: str | None = Field(None, description="Who brought the key back")
    actual_duration_hours: int | None = Field(None, description="Hours the key was out")
    cancelled_at: datetime | None = Field(None, description="When it was cancelled")
    cancellation_reason: str | None = Field(None, description="Why it was cancelled")
    reminders_sent: int = Field(..., description="Overdue reminders delivered")

    @classmethod
    def from_domain(cls, assignment: Assignment) -> AssignmentResponse:
        """Convert domain Assignment aggregate to API response."""
        return cls(
            id=assignment.id.value,
            key_id=assignment.key_id.value,
            holder_id=assignment.holder_id.value,
            grantor_id=assignment.grantor_id.value,
            status=assignment.status.value,
            access_type=assignment.access_type.value,
            assigned_date=assignment.assigned_date,
            due_date=assignment.due_date,
            approval_required=assignment.approval_required,
            approved_at=assignment.approved_at,
            approved_by=_value(assignment.approved_by),
            collected_at=assignment.collected_at,
            collected_by=_value(assignment.collected_by),
            returned_at=assignment.returned_at,
            returned_by=_value(assignment.returned_by),
            actual_duration_hours=assignment.actual_duration_hours,
            cancelled_at=assignment.cancelled_at,
            cancellation_reason=assignment.cancellation_reason,
            reminders_sent=assignment.reminders_sent,
        )


class ProofResponse(BaseModel):
    """Response model for a minted handover proof.

    ``qr_text`` is the exact text to render as the QR code.
    """

    assignment_id: str = Field(..., description="Assignment the proof is for")
    key_id: str = Field(..., description="Key being handed over")
    holder_id: str = Field(..., description="Principal who will present the proof")
    action: str = Field(..., description="collection or deposit")
    issued_at: datetime = Field(..., description="When the proof was issued")
    expires_at: datetime = Field(..., description="When the proof stops being accepted")
    qr_text: str = Field(..., description="Compact JSON payload for the QR code")

    @classmethod
    def from_domain(cls, token: ProofToken) -> ProofResponse:
        """Convert a proof token to API response."""
        return cls(
            assignment_id=token.assignment_id,
            key_id=token.key_id,
            holder_id=token.holder_id,
            action=token.action.value,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            qr_text=encode_proof(token),
        )


def _value(identifier) -> str | None:
    return identifier.value if identifier is not None else None
