"""Pydantic models for delegation requests and responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from custody.domain.aggregates import Delegation
from custody.domain.value_objects import DelegationPermissions


class DelegateRequest(BaseModel):
    """Request model for sharing a key with a peer.

    The caller (X-Actor-Id) is the delegator. Re-sharing is off unless
    asked for, and only honored when the caller's own grant allows it.
    """

    key_id: str = Field(..., description="Key to share (ULID format)", min_length=1)
    delegate_id: str = Field(..., description="Principal receiving access", min_length=1)
    duration_hours: int = Field(..., description="How long the grant lasts", ge=1)
    message: str | None = Field(None, description="Note for the delegate")
    can_collect: bool = Field(True, description="Delegate may collect the key")
    can_return: bool = Field(True, description="Delegate may return the key")
    can_delegate: bool = Field(False, description="Delegate may share onwards")

    def to_domain_permissions(self) -> DelegationPermissions:
        """Convert the permission flags to the domain value object."""
        return DelegationPermissions(
            can_collect=self.can_collect,
            can_return=self.can_return,
            can_delegate=self.can_delegate,
        )


class CloseDelegationRequest(BaseModel):
    """Request model for revoking or cancelling a grant."""

    reason: str | None = Field(None, description="Why the grant ends")


class ExtendDelegationRequest(BaseModel):
    """Request model for extending a grant."""

    extra_hours: int = Field(..., description="Hours to add", ge=1)


class DelegationResponse(BaseModel):
    """Response model for a delegation."""

    id: str = Field(..., description="Delegation ID (ULID format)")
    key_id: str = Field(..., description="Shared key")
    assignment_id: str = Field(..., description="Hold the grant is layered on")
    delegator_id: str = Field(..., description="Principal who shared the key")
    delegate_id: str = Field(..., description="Principal who received access")
    status: str = Field(..., description="active, expired, revoked or cancelled")
    shared_date: datetime = Field(..., description="When the grant was made")
    expires_at: datetime = Field(..., description="When the grant lapses")
    message: str | None = Field(None, description="Note for the delegate")
    can_collect: bool = Field(..., description="Delegate may collect the key")
    can_return: bool = Field(..., description="Delegate may return the key")
    can_delegate: bool = Field(..., description="Delegate may share onwards")
    access_count: int = Field(..., description="Handovers performed under the grant")
    parent_id: str | None = Field(None, description="Grant this one was re-shared from")

    @classmethod
    def from_domain(cls, delegation: Delegation) -> DelegationResponse:
        """Convert domain Delegation aggregate to API response."""
        return cls(
            id=delegation.id.value,
            key_id=delegation.key_id.value,
            assignment_id=delegation.assignment_id.value,
            delegator_id=delegation.delegator_id.value,
            delegate_id=delegation.delegate_id.value,
            status=delegation.status.value,
            shared_date=delegation.shared_date,
            expires_at=delegation.expires_at,
            message=delegation.message,
            can_collect=delegation.permissions.can_collect,
            can_return=delegation.permissions.can_return,
            can_delegate=delegation.permissions.can_delegate,
            access_count=delegation.access_count,
            parent_id=delegation.parent_id.value if delegation.parent_id else None,
        )
